# server.py
"""
HTTP surface for the storefront checkout:
- POST /api/upload : multipart form (pdf / xlsx / file parts + order fields) -> OneDrive
- GET  /api/diag   : which variables are configured and whether a token can be obtained

Blocking Graph calls run in the threadpool; each request gets its own
client, token and deadline.
"""
import os
from typing import Optional

import requests
import uvicorn
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from checkout_upload import CheckoutForm, CheckoutUploader, UploadedFile
from config import Settings, get_settings
from diagnostics import run_diagnostics
from errors import (
    AuthError,
    ConfigError,
    DeadlineExceededError,
    ParseError,
    RemoteError,
    UploadError,
)
from logging_config import setup_logging
from onedrive_handler import DEFAULT_MIME

ERROR_STATUS = {
    ParseError: 400,
    ConfigError: 500,
    AuthError: 502,
    RemoteError: 502,
    DeadlineExceededError: 504,
}


def status_for(exc: UploadError) -> int:
    for cls, status in ERROR_STATUS.items():
        if isinstance(exc, cls):
            return status
    return 500


def get_http_session() -> Optional[requests.Session]:
    """Outbound session override point; None means one fresh session per operation."""
    return None


async def read_checkout_form(request: Request) -> CheckoutForm:
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" not in content_type.lower():
        raise ParseError("Expected multipart/form-data", {"content_type": content_type[:100]})
    try:
        form = await request.form()
    except (StarletteHTTPException, MultiPartException) as e:
        reason = getattr(e, "detail", None) or getattr(e, "message", None) or str(e)
        raise ParseError(f"Malformed multipart body: {reason}") from e

    values = {}
    files = []
    try:
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                files.append(UploadedFile(
                    field=key,
                    filename=value.filename or None,
                    mime_type=value.content_type or DEFAULT_MIME,
                    data=await value.read(),
                ))
            else:
                values[key] = value
    finally:
        await form.close()
    return CheckoutForm(values=values, files=files)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.JSON_LOGGING)

    app = FastAPI(title="Checkout upload relay", version="1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError):
        status = status_for(exc)
        logger.error("{} on {}: {}", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(
            status_code=status,
            content={"ok": False, "error": exc.message, "type": type(exc).__name__, "details": exc.details},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.detail}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error("Unhandled error on {}", request.url.path)
        return JSONResponse(status_code=500, content={"ok": False, "error": "Internal error"})

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.api_route("/api/upload", methods=["OPTIONS"])
    @app.api_route("/api/diag", methods=["OPTIONS"])
    def preflight():
        return Response(status_code=204)

    @app.post("/api/upload")
    async def upload(
        request: Request,
        settings: Settings = Depends(get_settings),
        session: Optional[requests.Session] = Depends(get_http_session),
    ):
        logger.info("Upload request received")
        form = await read_checkout_form(request)
        uploader = CheckoutUploader(settings, session=session)
        return await run_in_threadpool(uploader.handle, form)

    @app.get("/api/diag")
    async def diag(
        settings: Settings = Depends(get_settings),
        session: Optional[requests.Session] = Depends(get_http_session),
    ):
        return await run_in_threadpool(run_diagnostics, settings, session)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", get_settings().PORT)))
