"""Exception hierarchy for the installed-application authorization flow.

Provides specific exception types for different failure modes so the CLI
can tell a forged callback from a port conflict from an expired code.
Attempt-terminal errors carry the FailureKind the orchestrator ended in.
"""

from __future__ import annotations

from gmail_cli.auth.models.flow import FailureKind


class AuthError(Exception):
    """Base exception for all authorization and credential errors."""

    kind: FailureKind | None = None


class ConfigError(AuthError):
    """Raised when the client-secrets configuration is missing or invalid."""

    pass


class EntropyUnavailableError(AuthError):
    """Raised when the secure random source cannot supply bytes."""

    kind = FailureKind.ENTROPY_UNAVAILABLE


class ListenerError(AuthError):
    """Raised when the local callback listener fails or stops unexpectedly."""

    kind = FailureKind.SERVER_ERROR


class ListenerBindError(ListenerError):
    """Raised when the callback listener cannot bind its port."""

    pass


class AuthorizationTimeoutError(AuthError):
    """Raised when no redirect arrives within the authorization timeout."""

    kind = FailureKind.TIMEOUT


class StateMismatchError(AuthError):
    """Raised when the callback state does not match the generated token.

    This indicates a forged or replayed redirect. The code must never be
    exchanged when this is raised.
    """

    kind = FailureKind.STATE_MISMATCH


class AuthorizationDeniedError(AuthError):
    """Raised when the provider redirects back with an error parameter."""

    kind = FailureKind.PROVIDER_ERROR

    def __init__(self, error: str, description: str | None = None):
        self.error = error
        self.description = description
        message = f"Authorization denied by provider: {error}"
        if description:
            message += f" ({description})"
        super().__init__(message)


class TokenError(AuthError):
    """Raised when token endpoint operations fail."""

    def __init__(
        self,
        message: str,
        error: str | None = None,
        description: str | None = None,
    ):
        self.error = error
        self.description = description
        super().__init__(message)


class TokenExchangeError(TokenError):
    """Raised when the authorization code to token exchange fails."""

    kind = FailureKind.EXCHANGE_ERROR


class TokenRefreshError(TokenError):
    """Raised when a refresh token cannot be exchanged for a new access token."""

    pass


class CredentialLoadError(AuthError):
    """Raised when the persisted credential cannot be read."""

    pass


class CredentialNotFoundError(CredentialLoadError):
    """Raised when no credential file exists."""

    pass


class CredentialCorruptError(CredentialLoadError):
    """Raised when the credential file cannot be decoded."""

    pass


class PersistError(AuthError):
    """Raised when a credential cannot be written to disk.

    Surfaced even when authorization itself succeeded: an unsaved
    credential forces re-authorization on every future run.
    """

    kind = FailureKind.PERSIST_ERROR
