# errors.py
"""
Error taxonomy for the upload relay.

Every failure surfaced to a caller is an UploadError subclass carrying a
human-readable message and a details dict. Details must never hold secrets
or bearer tokens; upstream bodies are truncated before they land here.
"""
from typing import Any, Dict, Optional

BODY_PREVIEW_LIMIT = 400


def truncate(text: Optional[str], limit: int = BODY_PREVIEW_LIMIT) -> str:
    if not text:
        return ""
    return text[:limit]


class UploadError(Exception):
    """Base exception for all upload relay errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(UploadError):
    """Required configuration is missing. Raised before any network call."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(
            f"Missing configuration: {', '.join(self.missing)}",
            {"missing": self.missing},
        )


class AuthError(UploadError):
    """The identity endpoint rejected the credentials or answered with garbage."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        self.status = status
        self.body = truncate(body)
        # full upstream text, kept out of details and error responses
        self.raw_body = body or ""
        super().__init__(message, {"status": status, "body": self.body})


class RemoteError(UploadError):
    """The storage endpoint returned a failure status (or was unreachable)."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        self.status = status
        self.body = truncate(body)
        # full upstream text, kept out of details and error responses
        self.raw_body = body or ""
        super().__init__(message, {"status": status, "body": self.body})


class DeadlineExceededError(UploadError):
    """The operation ran out of its time budget."""


class ParseError(UploadError):
    """Inbound request is malformed or lacks the expected file part."""
