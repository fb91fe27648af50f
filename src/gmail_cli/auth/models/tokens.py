"""Token endpoint request and response models.

Contains the form bodies sent to the token endpoint and the response
parsed from it (RFC 6749 Section 5).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict

from gmail_cli.auth.models.credential import Credential


@dataclass(frozen=True)
class CodeExchangeRequest:
    """Authorization code grant parameters (RFC 6749 Section 4.1.3)."""

    code: str
    redirect_uri: str
    client_id: str
    client_secret: str | None = None
    code_verifier: str | None = None  # RFC 7636 PKCE

    def to_form_data(self) -> dict[str, str]:
        """Token requests must use form encoding, not JSON."""
        data = {
            "grant_type": "authorization_code",
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        if self.code_verifier:
            data["code_verifier"] = self.code_verifier
        return data


@dataclass(frozen=True)
class RefreshRequest:
    """Refresh token grant parameters (RFC 6749 Section 6)."""

    refresh_token: str
    client_id: str
    client_secret: str | None = None

    def to_form_data(self) -> dict[str, str]:
        data = {
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        return data


class TokenResponse(BaseModel):
    """Token endpoint response, success (5.1) or error (5.2) form."""

    model_config = ConfigDict(extra="ignore")

    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None
    id_token: str | None = None

    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        return self.error is None and bool(self.access_token)

    def is_error(self) -> bool:
        return self.error is not None

    def calculate_expiry(self, now: datetime | None = None) -> datetime | None:
        """Absolute expiry from expires_in, or None when the provider sent none."""
        if self.expires_in is None:
            return None
        now = now or datetime.now(timezone.utc)
        return now + timedelta(seconds=self.expires_in)

    def to_credential(self) -> Credential:
        """Convert a successful response into a new Credential.

        Raises:
            ValueError: If the response is not successful
        """
        if not self.is_success():
            raise ValueError("Cannot convert error response to Credential")

        return Credential(
            access_token=self.access_token,
            token_type=self.token_type or "Bearer",
            refresh_token=self.refresh_token,
            expiry=self.calculate_expiry(),
        )
