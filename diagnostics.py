# diagnostics.py
from typing import Any, Dict, Optional

import requests
from loguru import logger

from config import CREDENTIAL_VARIABLES, Settings
from errors import UploadError
from graph_http import Deadline
from onedrive_handler import fetch_access_token

ERROR_PREVIEW_LIMIT = 500


def run_diagnostics(settings: Settings, session: Optional[requests.Session] = None) -> Dict[str, Any]:
    """
    Report which variables are set (booleans only) and whether a token can be
    obtained. The token itself is discarded.
    """
    result: Dict[str, Any] = {
        "envPresent": settings.env_present(),
        "tokenOk": False,
        "tokenError": None,
    }
    if settings.missing(CREDENTIAL_VARIABLES):
        result["tokenError"] = "Missing ENV"
        return result

    http = session if session is not None else requests.Session()
    try:
        fetch_access_token(
            settings.credentials,
            http,
            Deadline(settings.REQUEST_TIMEOUT, settings.REQUEST_TIMEOUT),
            authority_host=settings.AUTHORITY_HOST,
            scope=settings.GRAPH_SCOPE,
        )
        result["tokenOk"] = True
    except UploadError as e:
        body = getattr(e, "raw_body", "")
        result["tokenError"] = (body or e.message)[:ERROR_PREVIEW_LIMIT]
        logger.warning("Diagnostics token check failed: {}", e.message)
    finally:
        if session is None:
            http.close()
    return result
