"""Authorization flow models.

Contains the orchestrator state machine, the authorization request and
the result extracted from the provider redirect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlencode


class FlowState(str, Enum):
    """States of a single authorization attempt."""

    IDLE = "idle"
    LISTENER_STARTING = "listener_starting"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING = "exchanging"
    AUTHORIZED = "authorized"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Why an authorization attempt ended in FlowState.FAILED."""

    TIMEOUT = "timeout"
    STATE_MISMATCH = "state_mismatch"
    SERVER_ERROR = "server_error"
    EXCHANGE_ERROR = "exchange_error"
    PROVIDER_ERROR = "provider_error"
    ENTROPY_UNAVAILABLE = "entropy_unavailable"
    PERSIST_ERROR = "persist_error"


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the installed-application flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    state: str
    scopes: tuple[str, ...] = field(default_factory=tuple)
    code_challenge: str | None = None
    code_challenge_method: str = "S256"
    access_type: str = "offline"  # ask for a refresh token
    prompt: str | None = "consent"

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": self.state,
            "access_type": self.access_type,
        }

        if self.scopes:
            params["scope"] = " ".join(self.scopes)
        if self.prompt:
            params["prompt"] = self.prompt
        if self.code_challenge:
            params["code_challenge"] = self.code_challenge
            params["code_challenge_method"] = self.code_challenge_method

        separator = "&" if "?" in self.authorization_endpoint else "?"
        return f"{self.authorization_endpoint}{separator}{urlencode(params)}"


@dataclass(frozen=True)
class CallbackResult:
    """Parameters of the one redirect consumed by an authorization attempt."""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        return self.error is None and bool(self.code)

    def is_error(self) -> bool:
        return self.error is not None
