"""Authorization code flow orchestration for one interactive attempt.

Drives the attempt from listener start-up through the browser redirect
and code exchange to the persisted credential:

    IDLE -> LISTENER_STARTING -> AWAITING_REDIRECT -> EXCHANGING -> AUTHORIZED

Any failure moves the attempt to FAILED, which is terminal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from gmail_cli.auth.models.config import ClientConfig
from gmail_cli.auth.models.credential import Credential
from gmail_cli.auth.models.errors import (
    AuthError,
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
)
from gmail_cli.auth.models.flow import (
    AuthorizationRequest,
    CallbackResult,
    FailureKind,
    FlowState,
)
from gmail_cli.auth.primitives.browser import open_browser
from gmail_cli.auth.primitives.pkce import PKCEGenerator
from gmail_cli.auth.primitives.state import StateTokenGenerator, validate_state
from gmail_cli.auth.services.listener import CallbackListener
from gmail_cli.auth.services.store import CredentialStore
from gmail_cli.auth.services.tokens import TokenClient

logger = logging.getLogger(__name__)

DEFAULT_AUTHORIZATION_TIMEOUT = 300.0  # 5 minutes

ListenerFactory = Callable[[], CallbackListener]
BrowserOpener = Callable[[str], bool]


class AuthorizationOrchestrator:
    """Runs one interactive authorization attempt.

    One instance per attempt; the state token, PKCE pair and callback
    result never outlive it. Errors are raised to the caller, never turned
    into a process exit.
    """

    def __init__(
        self,
        client_config: ClientConfig,
        token_client: TokenClient,
        store: CredentialStore,
        listener_factory: ListenerFactory = CallbackListener,
        timeout: float = DEFAULT_AUTHORIZATION_TIMEOUT,
        state_generator: StateTokenGenerator | None = None,
        pkce_generator: PKCEGenerator | None = None,
        browser_opener: BrowserOpener | None = open_browser,
        use_pkce: bool = True,
    ):
        """Initialize the orchestrator.

        Args:
            client_config: Client registration and endpoints
            token_client: Token endpoint client used for the code exchange
            store: Where the resulting credential is persisted
            listener_factory: Builds the callback listener for this attempt
            timeout: Seconds to wait for the redirect
            state_generator: Source of the CSRF state token
            pkce_generator: Source of PKCE parameters
            browser_opener: Opens the authorization URL, None to only print it
            use_pkce: Send a PKCE challenge with the request
        """
        self.client_config = client_config
        self.token_client = token_client
        self.store = store
        self.timeout = timeout
        self._listener_factory = listener_factory
        self._state_generator = state_generator or StateTokenGenerator()
        self._pkce_generator = pkce_generator or PKCEGenerator()
        self._browser_opener = browser_opener
        self._use_pkce = use_pkce

        self.state = FlowState.IDLE
        self.failure: FailureKind | None = None
        self.authorization_url: str | None = None

    async def run(self) -> Credential:
        """Run the attempt to completion.

        Returns:
            Credential: The exchanged and persisted credential

        Raises:
            ListenerBindError: The callback port could not be bound
            ListenerError: The listener died while waiting
            EntropyUnavailableError: No secure randomness for state/PKCE
            AuthorizationTimeoutError: No redirect within the timeout
            StateMismatchError: The redirect carried a foreign state
            AuthorizationDeniedError: The provider redirected with an error
            TokenExchangeError: The code could not be exchanged
            PersistError: The credential could not be saved
        """
        if self.state is not FlowState.IDLE:
            raise RuntimeError("AuthorizationOrchestrator instances are single-use")

        try:
            credential = await self._authorize()
            self.store.save(credential)
        except AuthError as e:
            self._fail(e.kind or FailureKind.SERVER_ERROR)
            raise
        except asyncio.CancelledError:
            self._transition(FlowState.FAILED)
            raise

        self._transition(FlowState.AUTHORIZED)
        logger.info("Authorization successful")
        return credential

    async def _authorize(self) -> Credential:
        self._transition(FlowState.LISTENER_STARTING)
        listener = self._listener_factory()
        await listener.start()

        try:
            self._transition(FlowState.AWAITING_REDIRECT)
            state_token = self._state_generator.generate()
            pkce = self._pkce_generator.generate_parameters() if self._use_pkce else None

            request = AuthorizationRequest(
                authorization_endpoint=self.client_config.authorization_endpoint,
                client_id=self.client_config.client_id,
                redirect_uri=listener.redirect_uri,
                state=state_token,
                scopes=self.client_config.scopes,
                code_challenge=pkce.code_challenge if pkce else None,
            )
            self.authorization_url = request.build_authorization_url()
            self._present(self.authorization_url)

            result = await self._await_redirect(listener)
        finally:
            await listener.stop()

        validate_state(state_token, result.state)
        if result.is_error():
            raise AuthorizationDeniedError(result.error, result.error_description)

        self._transition(FlowState.EXCHANGING)
        return await self.token_client.exchange_code(
            result.code,
            redirect_uri=request.redirect_uri,
            code_verifier=pkce.code_verifier if pkce else None,
        )

    async def _await_redirect(self, listener: CallbackListener) -> CallbackResult:
        """Wait for the redirect, a listener failure, or the timeout."""
        logger.info(f"Waiting up to {self.timeout:.0f}s for authorization")
        try:
            return await asyncio.wait_for(listener.wait_for_callback(), self.timeout)
        except asyncio.TimeoutError:
            raise AuthorizationTimeoutError(
                f"Authorization timeout - no response received within "
                f"{self.timeout:.0f} seconds"
            ) from None

    def _present(self, url: str) -> None:
        """Show the URL to the user and try to open it in a browser."""
        logger.info(f"Opening browser for authorization: {url}")
        print(
            "\nIf your browser does not open automatically, visit this URL:\n\n"
            f"  {url}\n",
            flush=True,
        )

        if self._browser_opener is None:
            return
        try:
            opened = self._browser_opener(url)
        except Exception as e:
            logger.warning(f"Could not open browser: {e}")
            return
        if not opened:
            logger.info("No browser opened, use the URL above")

    def _transition(self, state: FlowState) -> None:
        logger.debug(f"Authorization state: {self.state.value} -> {state.value}")
        self.state = state

    def _fail(self, kind: FailureKind) -> None:
        self.failure = kind
        self._transition(FlowState.FAILED)
        logger.error(f"Authorization failed: {kind.value}")
