# graph_http.py
"""
Transport helpers shared by the token provider and the drive client.

- ParsedResponse: status + raw body + optional JSON, with explicit field access
- Deadline: one time budget for a whole upload, split across outbound calls
- send: issue a request through a requests.Session and wrap transport failures
"""
import json
import time
from typing import Any, Callable, Dict, Optional

import requests
from loguru import logger

from errors import DeadlineExceededError, RemoteError


class ParsedResponse:
    def __init__(self, status: int, raw_body: str, parsed: Optional[Any] = None):
        self.status = status
        self.raw_body = raw_body
        self.parsed = parsed

    @classmethod
    def from_response(cls, resp: requests.Response) -> "ParsedResponse":
        raw = resp.text or ""
        parsed = None
        if raw:
            try:
                parsed = json.loads(raw)
            except ValueError:
                parsed = None
        return cls(resp.status_code, raw, parsed)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def json(self) -> Dict[str, Any]:
        """Parsed body when it is a JSON object, otherwise an empty dict."""
        return self.parsed if isinstance(self.parsed, dict) else {}

    def field(self, name: str) -> Optional[Any]:
        return self.json.get(name)

    def require(self, name: str, error: Callable[[str], Exception]) -> Any:
        value = self.field(name)
        if not value:
            raise error(f"Response has no '{name}' field")
        return value

    def __repr__(self) -> str:
        return f"ParsedResponse(status={self.status}, body={len(self.raw_body)} chars)"


class Deadline:
    """
    Time budget for one operation. Every outbound call gets
    min(per_call, remaining) as its timeout.
    """

    def __init__(self, budget: Optional[float], per_call: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.per_call = per_call
        self.expires_at = None if budget is None else clock() + budget

    @classmethod
    def from_settings(cls, settings) -> "Deadline":
        return cls(settings.OPERATION_TIMEOUT, settings.REQUEST_TIMEOUT)

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return self.expires_at - self._clock()

    def timeout(self) -> float:
        remaining = self.remaining()
        if remaining is None:
            return self.per_call
        if remaining <= 0:
            raise DeadlineExceededError("Operation deadline exceeded", {"budget_exhausted": True})
        return min(self.per_call, remaining)


def send(
    session: requests.Session,
    method: str,
    url: str,
    deadline: Deadline,
    label: str,
    **kwargs,
) -> ParsedResponse:
    """
    Send one request and return the parsed response, whatever its status.
    Only transport failures raise here; status handling is left to callers.
    `label` is what gets logged, never the URL (upload URLs embed a credential).
    """
    timeout = deadline.timeout()
    try:
        resp = session.request(method, url, timeout=timeout, **kwargs)
    except requests.Timeout as e:
        raise RemoteError(f"{label} timed out after {timeout:.1f}s") from e
    except requests.RequestException as e:
        raise RemoteError(f"{label} failed: {e.__class__.__name__}") from e
    parsed = ParsedResponse.from_response(resp)
    logger.debug("{} -> {}", label, parsed.status)
    return parsed
