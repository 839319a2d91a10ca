import pytest

from helpers import TOKEN_HOST, FakeSession, make_settings, token_ok


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def authed_session(fake_session) -> FakeSession:
    return fake_session.on("POST", TOKEN_HOST, token_ok())
