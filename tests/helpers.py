"""Fakes shared by the test modules: a scripted requests.Session, a fake drive and settings."""
import json
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from config import Settings

MIB = 1024 * 1024
DRIVE = "https://graph.microsoft.com/v1.0/users/shop%40example.com/drive"
TOKEN_HOST = "login.microsoftonline.com"


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        if text is not None:
            self.text = text
        elif body is not None:
            self.text = json.dumps(body)
        else:
            self.text = ""


class Call:
    def __init__(self, method: str, url: str, kwargs: Dict[str, Any]):
        self.method = method
        self.url = url
        self.kwargs = kwargs

    @property
    def headers(self) -> Dict[str, str]:
        return self.kwargs.get("headers") or {}

    @property
    def data(self):
        return self.kwargs.get("data")

    def __repr__(self):
        return f"Call({self.method} {self.url})"


class FakeSession:
    """
    Stand-in for requests.Session. Routes match on method + URL substring;
    a route answers with a callable(call) or a list of responses (the last
    one repeats). Exceptions in a response list are raised.
    """

    def __init__(self):
        self.calls: List[Call] = []
        self._routes = []
        self.closed = False

    def on(self, method: str, contains: str, *responses):
        self._routes.append([method, contains, list(responses)])
        return self

    def request(self, method, url, **kwargs):
        call = Call(method, url, kwargs)
        self.calls.append(call)
        for route in self._routes:
            route_method, contains, responses = route
            if route_method != method or contains not in url:
                continue
            if len(responses) == 1 and callable(responses[0]) and not isinstance(responses[0], BaseException):
                return responses[0](call)
            response = responses.pop(0) if len(responses) > 1 else responses[0]
            if isinstance(response, BaseException):
                raise response
            return response
        raise AssertionError(f"unexpected request {method} {url}")

    def close(self):
        self.closed = True

    def calls_to(self, method: str, contains: str = "") -> List[Call]:
        return [c for c in self.calls if c.method == method and contains in c.url]

    @property
    def network_calls(self) -> int:
        return len(self.calls)


class FakeDriveStore:
    """Folder-aware responder for GET item / POST children on the drive."""

    def __init__(self, existing=()):
        self.folders = set(existing)
        self.created: List[str] = []

    def __call__(self, call: Call) -> FakeResponse:
        if call.method == "GET":
            path = unquote(call.url.split("/root:/", 1)[1])
            if path in self.folders:
                return FakeResponse(200, {"name": path.rsplit("/", 1)[-1], "folder": {"childCount": 0}})
            return FakeResponse(404, {"error": {"code": "itemNotFound"}})
        if call.method == "POST" and call.url.endswith("/children"):
            if "/root:/" in call.url:
                parent = unquote(call.url.split("/root:/", 1)[1][: -len(":/children")])
            else:
                parent = ""
            name = call.kwargs["json"]["name"]
            path = f"{parent}/{name}" if parent else name
            self.folders.add(path)
            self.created.append(path)
            return FakeResponse(201, {"name": name, "folder": {}})
        raise AssertionError(f"unexpected drive call {call}")


def make_settings(**overrides) -> Settings:
    values = dict(
        TENANT_ID="tenant-id",
        CLIENT_ID="client-id",
        CLIENT_SECRET="client-secret",
        ONEDRIVE_USER_UPN="shop@example.com",
        ROOT_FOLDER="QuoteNeuma",
    )
    values.update(overrides)
    return Settings(**values)


def token_ok(value: str = "bearer-value") -> FakeResponse:
    return FakeResponse(200, {"token_type": "Bearer", "expires_in": 3599, "access_token": value})


