"""Steady-state credential entry point.

CredentialManager turns whatever is on disk into a ready-to-use
authenticated transport, falling back to interactive authorization
whenever the stored credential cannot be used.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from gmail_cli.auth.models.config import ClientConfig, load_client_config
from gmail_cli.auth.models.credential import Credential
from gmail_cli.auth.models.errors import CredentialLoadError, TokenRefreshError
from gmail_cli.auth.primitives.browser import open_browser
from gmail_cli.auth.services.flow import AuthorizationOrchestrator
from gmail_cli.auth.services.listener import CallbackListener
from gmail_cli.auth.services.store import CredentialStore
from gmail_cli.auth.services.tokens import TokenClient
from gmail_cli.auth.transport import AuthenticatedTransport, build_transport
from gmail_cli.settings import Settings

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[], AuthorizationOrchestrator]


class CredentialManager:
    """Provides an authenticated transport, authorizing when needed.

    The stored credential is always refreshed against the provider, which
    is authoritative on whether it is still good. Missing, corrupt or
    unrefreshable credentials lead to a fresh interactive authorization.
    """

    def __init__(
        self,
        client_config: ClientConfig,
        store: CredentialStore,
        token_client: TokenClient | None = None,
        orchestrator_factory: OrchestratorFactory | None = None,
        http_timeout: float = 30.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the credential manager.

        Args:
            client_config: Client registration and endpoints
            store: Persisted credential location
            token_client: Token endpoint client, built from client_config if None
            orchestrator_factory: Builds one orchestrator per interactive attempt
            http_timeout: Timeout for the returned transport
            http_transport: Optional httpx transport for the returned client
        """
        self.client_config = client_config
        self.store = store
        self.token_client = token_client or TokenClient(
            client_config, timeout=http_timeout
        )
        self._orchestrator_factory = orchestrator_factory or self._default_orchestrator
        self._http_timeout = http_timeout
        self._http_transport = http_transport

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialManager:
        """Build a manager from settings, loading the client-secrets file.

        Raises:
            ConfigError: If the client-secrets file is missing or invalid
        """
        client_config = load_client_config(settings.credentials_file, settings.scopes)
        store = CredentialStore(settings.token_file)
        token_client = TokenClient(client_config, timeout=settings.http_timeout)

        def orchestrator_factory() -> AuthorizationOrchestrator:
            return AuthorizationOrchestrator(
                client_config,
                token_client,
                store,
                listener_factory=lambda: CallbackListener(
                    host=settings.callback_host,
                    port=settings.callback_port,
                    shutdown_grace_period=settings.shutdown_grace_period,
                ),
                timeout=settings.authorization_timeout,
                browser_opener=open_browser if settings.open_browser else None,
                use_pkce=settings.use_pkce,
            )

        return cls(
            client_config,
            store,
            token_client=token_client,
            orchestrator_factory=orchestrator_factory,
            http_timeout=settings.http_timeout,
        )

    async def obtain(self) -> AuthenticatedTransport:
        """Return a transport that signs requests with a valid access token.

        Raises:
            AuthError: Only when interactive authorization itself fails
                (timeout, state mismatch, bind error, exchange or persist
                failure). Load and refresh failures are recovered.
        """
        credential = await self._load_or_authorize()
        return build_transport(
            credential,
            self.token_client,
            store=self.store,
            timeout=self._http_timeout,
            transport=self._http_transport,
        )

    async def authorize(self) -> Credential:
        """Run a fresh interactive authorization and persist its result."""
        orchestrator = self._orchestrator_factory()
        return await orchestrator.run()

    async def _load_or_authorize(self) -> Credential:
        try:
            stored = self.store.load()
        except CredentialLoadError as e:
            logger.info(f"No usable stored credential ({e}), starting authorization")
            return await self.authorize()

        try:
            refreshed = await self.token_client.refresh(stored)
        except TokenRefreshError as e:
            logger.warning(f"Error refreshing token: {e}")
            return await self.authorize()

        if refreshed.access_token != stored.access_token:
            self.store.save(refreshed)
        else:
            logger.debug("Refresh returned the same access token")
        return refreshed

    def _default_orchestrator(self) -> AuthorizationOrchestrator:
        return AuthorizationOrchestrator(self.client_config, self.token_client, self.store)

    async def close(self) -> None:
        """Close the token endpoint client."""
        await self.token_client.close()
