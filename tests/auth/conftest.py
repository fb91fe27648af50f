import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest

from gmail_cli.auth.models.config import ClientConfig
from gmail_cli.auth.models.credential import Credential
from gmail_cli.auth.models.errors import ListenerBindError
from gmail_cli.auth.models.flow import CallbackResult
from gmail_cli.auth.services.store import CredentialStore


class FakeListener:
    """In-memory stand-in for CallbackListener."""

    def __init__(self, start_error: Exception | None = None):
        self.redirect_uri = "http://localhost:8080"
        self.start_error = start_error
        self.started = False
        self.stopped = False
        self._future: asyncio.Future[CallbackResult] | None = None

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True
        self._future = asyncio.get_running_loop().create_future()

    def deliver(self, result: CallbackResult) -> None:
        self._future.set_result(result)

    def fail(self, error: Exception) -> None:
        self._future.set_exception(error)

    async def wait_for_callback(self) -> CallbackResult:
        return await self._future

    async def stop(self) -> None:
        self.stopped = True
        if self._future is not None and not self._future.done():
            self._future.cancel()


def state_from_url(url: str) -> str:
    """Extract the state parameter from an authorization URL."""
    return parse_qs(urlparse(url).query)["state"][0]


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        client_id="client-123.apps.googleusercontent.com",
        client_secret="secret-456",
        scopes=("https://www.googleapis.com/auth/gmail.readonly",),
        authorization_endpoint="https://accounts.example.com/o/oauth2/auth",
        token_endpoint="https://oauth2.example.com/token",
    )


@pytest.fixture
def store(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path / "token.json")


@pytest.fixture
def issued_credential() -> Credential:
    return Credential(
        access_token="access-token-new",
        refresh_token="refresh-token-abc",
        expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def token_client(issued_credential) -> AsyncMock:
    client = AsyncMock()
    client.exchange_code.return_value = issued_credential
    return client


@pytest.fixture
def fake_listener() -> FakeListener:
    return FakeListener()


@pytest.fixture
def unbindable_listener() -> FakeListener:
    return FakeListener(
        start_error=ListenerBindError(
            "Cannot bind callback listener to localhost:8080: Address already in use"
        )
    )


@pytest.fixture
def callback_for():
    """Build a browser opener that answers the redirect through a FakeListener."""

    def make(listener: FakeListener, code: str = "auth-code-789", state: str | None = None):
        opened: list[str] = []

        def opener(url: str) -> bool:
            opened.append(url)
            listener.deliver(
                CallbackResult(code=code, state=state if state is not None else state_from_url(url))
            )
            return True

        opener.opened = opened
        return opener

    return make
