"""Authenticated HTTP transport handed to API-client code.

An httpx.AsyncClient whose auth attaches the current access token and
keeps it fresh for the lifetime of the client.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Generator

import httpx

from gmail_cli.auth.models.credential import Credential
from gmail_cli.auth.services.store import CredentialStore
from gmail_cli.auth.services.tokens import TokenClient

logger = logging.getLogger(__name__)

AuthenticatedTransport = httpx.AsyncClient


class CredentialAuth(httpx.Auth):
    """Bearer auth backed by a refreshable Credential.

    Refreshes before sending when the access token is known to be expired,
    and once more after a 401. Rotated credentials are persisted.
    """

    requires_request_body = True

    def __init__(
        self,
        credential: Credential,
        token_client: TokenClient,
        store: CredentialStore | None = None,
    ):
        self.credential = credential
        self._token_client = token_client
        self._store = store
        self._lock = asyncio.Lock()

    def sync_auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        raise RuntimeError("CredentialAuth requires an async client")

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        if self.credential.is_expired() and self.credential.can_refresh():
            await self._refresh(stale_token=self.credential.access_token)

        sent_token = self.credential.access_token
        request.headers["Authorization"] = self.credential.authorization_header()
        response = yield request

        if response.status_code == 401 and self.credential.can_refresh():
            logger.info("Access token rejected, refreshing")
            await self._refresh(stale_token=sent_token)
            request.headers["Authorization"] = self.credential.authorization_header()
            yield request

    async def _refresh(self, stale_token: str) -> None:
        async with self._lock:
            # Another request already rotated the token.
            if self.credential.access_token != stale_token:
                return

            refreshed = await self._token_client.refresh(self.credential)
            if refreshed.access_token != self.credential.access_token and self._store:
                self._store.save(refreshed)
            self.credential = refreshed


def build_transport(
    credential: Credential,
    token_client: TokenClient,
    store: CredentialStore | None = None,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AuthenticatedTransport:
    """Create an AsyncClient that signs every request with credential."""
    return httpx.AsyncClient(
        auth=CredentialAuth(credential, token_client, store),
        timeout=timeout,
        transport=transport,
    )
