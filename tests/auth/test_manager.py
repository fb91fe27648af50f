"""Tests for the credential manager's load, refresh and authorize decisions."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from gmail_cli.auth.models.credential import Credential
from gmail_cli.auth.models.errors import (
    AuthorizationTimeoutError,
    TokenRefreshError,
)
from gmail_cli.auth.services.flow import AuthorizationOrchestrator
from gmail_cli.auth.services.listener import CallbackListener
from gmail_cli.auth.services.manager import CredentialManager
from gmail_cli.auth.services.tokens import TokenClient
from gmail_cli.auth.transport import CredentialAuth


@pytest.fixture
def stored_credential(store) -> Credential:
    credential = Credential(
        access_token="access-token-old",
        refresh_token="refresh-token-abc",
        expiry=datetime.now(timezone.utc) - timedelta(minutes=1),
    )
    store.save(credential)
    return credential


@pytest.fixture
def orchestrator(issued_credential) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.run = AsyncMock(return_value=issued_credential)
    return orchestrator


class TestObtain:
    async def test_refreshed_token_is_saved_and_used(
        self, client_config, store, stored_credential, token_client, orchestrator,
        monkeypatch,
    ):
        # Arrange
        refreshed = stored_credential.with_refreshed(
            access_token="access-token-refreshed",
            expiry=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        token_client.refresh.return_value = refreshed
        save = MagicMock(wraps=store.save)
        monkeypatch.setattr(store, "save", save)
        manager = CredentialManager(
            client_config,
            store,
            token_client=token_client,
            orchestrator_factory=lambda: orchestrator,
        )

        # Act
        transport = await manager.obtain()

        # Assert
        try:
            assert isinstance(transport.auth, CredentialAuth)
            assert transport.auth.credential == refreshed
        finally:
            await transport.aclose()
        save.assert_called_once_with(refreshed)
        assert store.load().access_token == "access-token-refreshed"
        orchestrator.run.assert_not_called()

    async def test_unchanged_token_is_not_saved(
        self, client_config, store, stored_credential, token_client, orchestrator,
        monkeypatch,
    ):
        # Arrange
        token_client.refresh.return_value = stored_credential
        save = MagicMock()
        monkeypatch.setattr(store, "save", save)
        manager = CredentialManager(
            client_config,
            store,
            token_client=token_client,
            orchestrator_factory=lambda: orchestrator,
        )

        # Act
        transport = await manager.obtain()
        await transport.aclose()

        # Assert
        save.assert_not_called()
        orchestrator.run.assert_not_called()

    async def test_refresh_failure_falls_back_to_authorization(
        self, client_config, store, stored_credential, token_client, orchestrator,
        issued_credential,
    ):
        # Arrange
        token_client.refresh.side_effect = TokenRefreshError(
            "Token refresh rejected: invalid_grant", error="invalid_grant"
        )
        manager = CredentialManager(
            client_config,
            store,
            token_client=token_client,
            orchestrator_factory=lambda: orchestrator,
        )

        # Act
        transport = await manager.obtain()
        await transport.aclose()

        # Assert
        orchestrator.run.assert_awaited_once()
        assert transport.auth.credential == issued_credential

    async def test_missing_file_starts_authorization(
        self, client_config, store, token_client, orchestrator
    ):
        # Arrange
        manager = CredentialManager(
            client_config,
            store,
            token_client=token_client,
            orchestrator_factory=lambda: orchestrator,
        )

        # Act
        transport = await manager.obtain()
        await transport.aclose()

        # Assert
        orchestrator.run.assert_awaited_once()
        token_client.refresh.assert_not_called()

    async def test_corrupt_file_starts_authorization(
        self, client_config, store, token_client, orchestrator
    ):
        # Arrange
        store.path.write_text("garbage")
        manager = CredentialManager(
            client_config,
            store,
            token_client=token_client,
            orchestrator_factory=lambda: orchestrator,
        )

        # Act
        transport = await manager.obtain()
        await transport.aclose()

        # Assert
        orchestrator.run.assert_awaited_once()

    async def test_out_of_range_expiry_starts_authorization(
        self, client_config, store, token_client, orchestrator
    ):
        # Arrange
        store.path.write_text('{"access_token": "ya29", "expiry": Infinity}')
        manager = CredentialManager(
            client_config,
            store,
            token_client=token_client,
            orchestrator_factory=lambda: orchestrator,
        )

        # Act
        transport = await manager.obtain()
        await transport.aclose()

        # Assert
        orchestrator.run.assert_awaited_once()
        token_client.refresh.assert_not_called()

    async def test_authorization_failure_propagates(
        self, client_config, store, token_client, orchestrator
    ):
        # Arrange
        orchestrator.run.side_effect = AuthorizationTimeoutError(
            "Authorization timeout - no response received within 300 seconds"
        )
        manager = CredentialManager(
            client_config,
            store,
            token_client=token_client,
            orchestrator_factory=lambda: orchestrator,
        )

        # Act & Assert
        with pytest.raises(AuthorizationTimeoutError):
            await manager.obtain()

    async def test_authorize_uses_fresh_orchestrator_each_time(
        self, client_config, store, token_client, issued_credential
    ):
        # Arrange
        built = []

        def factory():
            orchestrator = MagicMock()
            orchestrator.run = AsyncMock(return_value=issued_credential)
            built.append(orchestrator)
            return orchestrator

        manager = CredentialManager(
            client_config, store, token_client=token_client, orchestrator_factory=factory
        )

        # Act
        await manager.authorize()
        await manager.authorize()

        # Assert
        assert len(built) == 2
        assert built[0] is not built[1]


class TestFirstRunScenario:
    """No token file: browser redirect, code exchange, signed API call."""

    async def test_end_to_end_with_real_listener(self, client_config, store):
        # Arrange
        token_requests = []
        api_requests = []

        def token_endpoint(request: httpx.Request) -> httpx.Response:
            token_requests.append(parse_qs(request.content.decode()))
            return httpx.Response(
                200,
                json={
                    "access_token": "ya29.first",
                    "token_type": "Bearer",
                    "expires_in": 3599,
                    "refresh_token": "1//first-refresh",
                },
            )

        def gmail_api(request: httpx.Request) -> httpx.Response:
            api_requests.append(request)
            return httpx.Response(200, json={"emailAddress": "me@example.com"})

        token_client = TokenClient(client_config)
        token_client._http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(token_endpoint)
        )

        redirects = []

        async def follow_redirect(url: str) -> None:
            query = parse_qs(urlparse(url).query)
            async with httpx.AsyncClient(trust_env=False, timeout=5.0) as browser:
                response = await browser.get(
                    query["redirect_uri"][0] + "/",
                    params={"code": "4/auth-code", "state": query["state"][0]},
                )
            redirects.append(response)

        browser_tasks = []

        def browser_opener(url: str) -> bool:
            browser_tasks.append(
                asyncio.get_running_loop().create_task(follow_redirect(url))
            )
            return True

        def orchestrator_factory():
            return AuthorizationOrchestrator(
                client_config,
                token_client,
                store,
                listener_factory=lambda: CallbackListener(
                    host="127.0.0.1", port=0, shutdown_grace_period=0.5
                ),
                timeout=10.0,
                browser_opener=browser_opener,
            )

        manager = CredentialManager(
            client_config,
            store,
            token_client=token_client,
            orchestrator_factory=orchestrator_factory,
            http_transport=httpx.MockTransport(gmail_api),
        )

        # Act
        transport = await manager.obtain()
        try:
            response = await transport.get(
                "https://gmail.googleapis.com/gmail/v1/users/me/profile"
            )
        finally:
            await transport.aclose()
            await asyncio.gather(*browser_tasks)
            await manager.close()

        # Assert
        assert response.json() == {"emailAddress": "me@example.com"}
        assert api_requests[0].headers["Authorization"] == "Bearer ya29.first"
        assert redirects[0].status_code == 200

        (form,) = token_requests
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["4/auth-code"]
        assert form["redirect_uri"][0].startswith("http://127.0.0.1:")
        assert "code_verifier" in form

        saved = store.load()
        assert saved.access_token == "ya29.first"
        assert saved.refresh_token == "1//first-refresh"
