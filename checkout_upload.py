# checkout_upload.py
"""
Storefront checkout upload: files from the multipart form go to
<ROOT_FOLDER>/<customer>/<YYYY>/<MMDD>/<serial>/ on OneDrive, followed by a
metadata.json describing the order.
"""
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
from loguru import logger
from pydantic import BaseModel

from config import Settings
from errors import ParseError
from graph_http import Deadline
from onedrive_handler import OneDriveClient
from paths import TargetPath, build_folder, build_target_path, unique_name

FILE_FIELDS = ("pdf", "xlsx", "file")
METADATA_FILE = "metadata.json"
METADATA_VERSION = "v1"


class UploadedFile(BaseModel):
    field: str
    filename: Optional[str] = None
    mime_type: str = "application/octet-stream"
    data: bytes

    @property
    def extension(self) -> Optional[str]:
        # the pdf/xlsx parts name their own type
        return self.field if self.field in ("pdf", "xlsx") else None


class CheckoutForm(BaseModel):
    values: Dict[str, str] = {}
    files: List[UploadedFile] = []

    def get(self, name: str) -> str:
        return (self.values.get(name) or "").strip()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_cart(raw: str) -> Any:
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ParseError("cartJson is not valid JSON", {"field": "cartJson", "reason": str(e)}) from e


class CheckoutUploader:
    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings
        self.session = session
        self.now = now

    def _pick_files(self, form: CheckoutForm) -> List[UploadedFile]:
        picked = [f for name in FILE_FIELDS for f in form.files if f.field == name]
        ignored = sorted({f.field for f in form.files if f.field not in FILE_FIELDS})
        if ignored:
            logger.warning("Ignoring unexpected file parts: {}", ", ".join(ignored))
        if not picked:
            raise ParseError(
                "No file provided. Send multipart/form-data with a 'pdf', 'xlsx' or 'file' part.",
                {"expected": list(FILE_FIELDS)},
            )
        return picked

    def handle(self, form: CheckoutForm) -> Dict[str, Any]:
        self.settings.require()

        files = self._pick_files(form)
        override = form.get("filename")
        if override and len(files) > 1:
            raise ParseError("filename override needs exactly one file part", {"files": len(files)})
        cart = parse_cart(form.get("cartJson"))

        customer = form.get("customerEmail")
        serial = form.get("serial")
        if not customer:
            logger.warning("No customerEmail supplied, filing under '{}'", self.settings.DEFAULT_OWNER)
            customer = self.settings.DEFAULT_OWNER
        if not serial:
            logger.warning("No serial supplied, using '{}'", self.settings.DEFAULT_SERIAL)
            serial = self.settings.DEFAULT_SERIAL

        when = self.now()
        folder = build_folder(self.settings.ROOT_FOLDER, customer, when, serial, form.get("subpath"))

        if self.session is not None:
            return self._store(self.session, form, files, folder, when, customer, serial, cart, override)
        with requests.Session() as session:
            return self._store(session, form, files, folder, when, customer, serial, cart, override)

    def _store(self, session, form, files, folder, when, customer, serial, cart, override) -> Dict[str, Any]:
        base_dir = "/".join(folder)
        client = OneDriveClient(self.settings, session=session, deadline=Deadline.from_settings(self.settings))
        token = client.acquire_token()
        if self.settings.ENSURE_FOLDERS:
            client.ensure_folders(token, folder)

        out = []
        # names already used in this folder; a clash would silently overwrite on the drive
        taken = {METADATA_FILE}
        for f in files:
            target = build_target_path(
                self.settings.ROOT_FOLDER,
                customer,
                when,
                serial,
                override or f.filename,
                subpath=form.get("subpath"),
                extension=f.extension,
            )
            if target.name in taken:
                target = TargetPath.in_folder(target.folder, unique_name(target.name, taken))
            taken.add(target.name)
            result = client.upload(token, target, f.data, f.mime_type)
            out.append({
                "path": result.remote_path,
                "filename": target.name,
                "size": result.size_bytes,
                "mime": result.mime_type,
            })

        meta = {
            "serial": serial,
            "customerEmail": customer,
            "when": when.isoformat(),
            "pageUrl": form.get("pageUrl"),
            "userAgent": form.get("userAgent"),
            "files": out,
            "cart": cart,
            "version": METADATA_VERSION,
        }
        meta_target = TargetPath.in_folder(folder, METADATA_FILE)
        client.upload(token, meta_target, json.dumps(meta, indent=2, ensure_ascii=False).encode("utf-8"), "application/json")
        logger.info("Stored {} file(s) under {}", len(out), base_dir)

        return {"ok": True, "folder": base_dir, "files": out, "meta": str(meta_target)}
