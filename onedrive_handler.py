# onedrive_handler.py
"""
OneDrive / Microsoft Graph helpers.

App-only (client credentials) access to one user's drive:
- fetch_access_token: service-principal secret -> bearer token
- OneDriveClient.ensure_folders: create missing folders parent-first
- OneDriveClient.upload: direct PUT for small payloads, upload session above the limit

Nothing here reads the environment; callers pass Settings/Credentials in.
A token lives for one operation only and is never cached or logged.
"""
import math
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import requests
from loguru import logger
from pydantic import BaseModel, Field

from config import MIB, Credentials, Settings
from errors import AuthError, ConfigError, RemoteError, UploadError
from graph_http import Deadline, send
from paths import TargetPath

CONFLICT_BEHAVIOR = "@microsoft.graph.conflictBehavior"
DEFAULT_DIRECT_LIMIT = 4 * MIB
DEFAULT_CHUNK_SIZE = 5 * MIB
DEFAULT_MIME = "application/octet-stream"


class AccessToken:
    __slots__ = ("value",)

    def __init__(self, value: str):
        self.value = value

    def header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.value}"}

    def __repr__(self) -> str:
        return "AccessToken(<redacted>)"


def fetch_access_token(
    credentials: Credentials,
    session: requests.Session,
    deadline: Deadline,
    authority_host: str = "https://login.microsoftonline.com",
    scope: str = "https://graph.microsoft.com/.default",
) -> AccessToken:
    """
    One POST to the tenant's v2.0 token endpoint, no retry.
    Raises ConfigError (no call made) on blank credentials, AuthError on a
    rejected or malformed answer with the body truncated to 400 chars.
    """
    secret = credentials.client_secret.get_secret_value()
    blanks = [
        name
        for name, value in (
            ("TENANT_ID", credentials.tenant_id),
            ("CLIENT_ID", credentials.client_id),
            ("CLIENT_SECRET", secret),
        )
        if not (value or "").strip()
    ]
    if blanks:
        raise ConfigError(blanks)

    url = f"{authority_host.rstrip('/')}/{quote(credentials.tenant_id, safe='')}/oauth2/v2.0/token"
    form = {
        "grant_type": "client_credentials",
        "client_id": credentials.client_id,
        "client_secret": secret,
        "scope": scope,
    }
    logger.info("Requesting Graph access token")
    resp = send(
        session,
        "POST",
        url,
        deadline,
        "token request",
        data=form,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    if not resp.ok:
        raise AuthError(f"Token request failed with HTTP {resp.status}", resp.status, resp.raw_body)
    value = resp.field("access_token")
    if not value or not isinstance(value, str):
        raise AuthError("Token response has no access_token", resp.status, resp.raw_body)
    return AccessToken(value)


class Strategy(str, Enum):
    DIRECT = "direct"
    CHUNKED = "chunked"


def select_strategy(size_bytes: int, threshold: int = DEFAULT_DIRECT_LIMIT) -> Strategy:
    """Payloads up to and including the threshold go as a single PUT."""
    if size_bytes < 0:
        raise ValueError("size_bytes must be >= 0")
    return Strategy.DIRECT if size_bytes <= threshold else Strategy.CHUNKED


def chunk_ranges(total_size: int, chunk_size: int) -> Iterator[Tuple[int, int]]:
    """Inclusive (start, end) byte ranges covering [0, total_size) with no gaps or overlap."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    for start in range(0, total_size, chunk_size):
        yield start, min(start + chunk_size, total_size) - 1


def chunk_count(total_size: int, chunk_size: int) -> int:
    return math.ceil(total_size / chunk_size)


class UploadResult(BaseModel):
    remote_path: str
    size_bytes: int
    mime_type: str
    item: Dict[str, Any] = Field(default_factory=dict)


class SessionState(str, Enum):
    CREATED = "created"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"


class UploadSession:
    """
    One resumable upload: ranges are PUT sequentially against the opaque
    upload URL; chunk N+1 is only sent after chunk N was accepted.
    The upload URL is pre-authorised, so chunk requests carry no bearer token.
    """

    def __init__(
        self,
        upload_url: str,
        total_size: int,
        session: requests.Session,
        deadline: Deadline,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if total_size <= 0:
            raise ValueError("upload session needs a non-empty payload")
        self.upload_url = upload_url
        self.total_size = total_size
        self.chunk_size = chunk_size
        self.bytes_sent = 0
        self.state = SessionState.CREATED
        self._http = session
        self._deadline = deadline

    def transfer(self, payload: bytes) -> Dict[str, Any]:
        """Send every range; returns the drive item from the final response."""
        if len(payload) != self.total_size:
            raise ValueError(f"payload is {len(payload)} bytes, session declared {self.total_size}")
        if self.state is not SessionState.CREATED:
            raise RuntimeError(f"session already {self.state.value}")

        self.state = SessionState.TRANSFERRING
        view = memoryview(payload)
        try:
            for start, end in chunk_ranges(self.total_size, self.chunk_size):
                chunk = view[start:end + 1]
                content_range = f"bytes {start}-{end}/{self.total_size}"
                resp = send(
                    self._http,
                    "PUT",
                    self.upload_url,
                    self._deadline,
                    f"chunk {content_range}",
                    data=bytes(chunk),
                    headers={"Content-Length": str(len(chunk)), "Content-Range": content_range},
                )
                if not resp.ok:
                    raise RemoteError(f"Chunk {start}-{end} failed with HTTP {resp.status}", resp.status, resp.raw_body)
                self.bytes_sent = end + 1
                logger.debug("Sent {}/{} bytes", self.bytes_sent, self.total_size)

                if self.bytes_sent < self.total_size:
                    continue
                if resp.status == 202:
                    raise RemoteError("Upload session did not complete after the final range", resp.status, resp.raw_body)
                self.state = SessionState.COMPLETED
                return resp.json
        except UploadError:
            self.state = SessionState.FAILED
            raise


FolderPath = Union[str, Sequence[str]]


class OneDriveClient:
    """
    Drive operations against /users/{upn}/drive for one upload operation.
    Pass a fresh instance (and Deadline) per request; it holds no shared state.
    """

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None, deadline: Optional[Deadline] = None):
        settings.require(("ONEDRIVE_USER_UPN",))
        self.settings = settings
        self.http = session if session is not None else requests.Session()
        self.deadline = deadline if deadline is not None else Deadline.from_settings(settings)
        upn = settings.ONEDRIVE_USER_UPN.strip()
        self.drive_base = f"{settings.GRAPH_BASE_URL.rstrip('/')}/users/{quote(upn, safe='')}/drive"

    def acquire_token(self) -> AccessToken:
        return fetch_access_token(
            self.settings.credentials,
            self.http,
            self.deadline,
            authority_host=self.settings.AUTHORITY_HOST,
            scope=self.settings.GRAPH_SCOPE,
        )

    # URLs

    def item_url(self, path: str, action: Optional[str] = None) -> str:
        url = f"{self.drive_base}/root:/{quote(path, safe='/')}"
        return f"{url}:/{action}" if action else url

    def children_url(self, parent: str) -> str:
        if not parent:
            return f"{self.drive_base}/root/children"
        return self.item_url(parent, "children")

    # Folders

    def get_item(self, token: AccessToken, path: str) -> Optional[Dict[str, Any]]:
        """Drive item metadata at path, or None when nothing is there."""
        resp = send(self.http, "GET", self.item_url(path), self.deadline, f"check {path}", headers=token.header())
        if resp.status == 404:
            return None
        if not resp.ok:
            raise RemoteError(f"Checking '{path}' failed with HTTP {resp.status}", resp.status, resp.raw_body)
        return resp.json

    def create_folder(self, token: AccessToken, parent: str, name: str) -> Dict[str, Any]:
        body = {"name": name, "folder": {}, CONFLICT_BEHAVIOR: "replace"}
        resp = send(
            self.http,
            "POST",
            self.children_url(parent),
            self.deadline,
            f"create folder {name}",
            json=body,
            headers=token.header(),
        )
        if resp.status == 409:
            logger.info("Folder '{}' appeared concurrently, treating as existing", name)
            return resp.json
        if not resp.ok:
            raise RemoteError(f"Creating folder '{name}' failed with HTTP {resp.status}", resp.status, resp.raw_body)
        return resp.json

    def ensure_folders(self, token: AccessToken, folder: FolderPath) -> List[str]:
        """
        Make every segment of folder exist, top level first. Returns the
        prefixes that had to be created (empty when everything existed).
        """
        segments = [s for s in (folder.split("/") if isinstance(folder, str) else folder) if s]
        created: List[str] = []
        parent = ""
        missing_below = False
        for segment in segments:
            prefix = f"{parent}/{segment}" if parent else segment
            if not missing_below:
                item = self.get_item(token, prefix)
                if item is not None and "folder" not in item and "file" in item:
                    raise RemoteError(f"'{prefix}' exists and is a file", 409)
                missing_below = item is None
            if missing_below:
                self.create_folder(token, parent, segment)
                logger.info("Created folder {}", prefix)
                created.append(prefix)
            parent = prefix
        return created

    # Uploads

    def upload_direct(self, token: AccessToken, target: TargetPath, payload: bytes, mime_type: str = DEFAULT_MIME) -> UploadResult:
        path = str(target)
        resp = send(
            self.http,
            "PUT",
            self.item_url(path, "content"),
            self.deadline,
            f"put {path}",
            data=payload,
            params={CONFLICT_BEHAVIOR: "replace"},
            headers={**token.header(), "Content-Type": mime_type or DEFAULT_MIME},
        )
        if not resp.ok:
            raise RemoteError(f"PUT {path} failed with HTTP {resp.status}", resp.status, resp.raw_body)
        return UploadResult(remote_path=path, size_bytes=len(payload), mime_type=mime_type or DEFAULT_MIME, item=resp.json)

    def create_upload_session(self, token: AccessToken, target: TargetPath, total_size: int) -> UploadSession:
        path = str(target)
        resp = send(
            self.http,
            "POST",
            self.item_url(path, "createUploadSession"),
            self.deadline,
            f"create upload session {path}",
            json={"item": {CONFLICT_BEHAVIOR: "replace"}},
            headers={**token.header(), "Content-Type": "application/json"},
        )
        if not resp.ok:
            raise RemoteError(f"Creating upload session failed with HTTP {resp.status}", resp.status, resp.raw_body)
        upload_url = resp.require("uploadUrl", lambda msg: RemoteError(f"Upload session: {msg}", resp.status, resp.raw_body))
        logger.info(
            "Upload session for {} opened, {} chunk(s)",
            path,
            chunk_count(total_size, self.settings.CHUNK_SIZE),
        )
        return UploadSession(str(upload_url), total_size, self.http, self.deadline, chunk_size=self.settings.CHUNK_SIZE)

    def upload_chunked(self, token: AccessToken, target: TargetPath, payload: bytes, mime_type: str = DEFAULT_MIME) -> UploadResult:
        session = self.create_upload_session(token, target, len(payload))
        item = session.transfer(payload)
        return UploadResult(remote_path=str(target), size_bytes=len(payload), mime_type=mime_type or DEFAULT_MIME, item=item)

    def upload(self, token: AccessToken, target: TargetPath, payload: bytes, mime_type: str = DEFAULT_MIME) -> UploadResult:
        strategy = select_strategy(len(payload), self.settings.DIRECT_UPLOAD_LIMIT)
        logger.info("Uploading {} ({} bytes, {})", target, len(payload), strategy.value)
        if strategy is Strategy.DIRECT:
            return self.upload_direct(token, target, payload, mime_type)
        return self.upload_chunked(token, target, payload, mime_type)
