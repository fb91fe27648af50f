"""Credential model persisted between runs.

The JSON shape matches what the token file has always held:
access_token, token_type, refresh_token (omitted when absent) and expiry
as an ISO-8601 timestamp with offset.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any


@dataclass
class Credential:
    """Access/refresh token pair with its expiry.

    Mutable so refresh can replace the access token and expiry in place.
    A credential without a refresh token cannot outlive its access token.
    """

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    expiry: datetime | None = None

    def __post_init__(self) -> None:
        # Naive expiries are UTC, matching what from_dict reads back.
        if self.expiry is not None and self.expiry.tzinfo is None:
            self.expiry = self.expiry.replace(tzinfo=timezone.utc)

    def is_expired(self, leeway_seconds: float = 10.0) -> bool:
        """Check whether the access token is expired, with a safety leeway.

        A credential without a known expiry is treated as not expired; the
        provider answers 401 if it disagrees.
        """
        if self.expiry is None:
            return False
        deadline = self.expiry - timedelta(seconds=leeway_seconds)
        return datetime.now(timezone.utc) >= deadline

    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def authorization_header(self) -> str:
        return f"{self.token_type or 'Bearer'} {self.access_token}"

    def with_refreshed(
        self,
        access_token: str,
        expiry: datetime | None,
        refresh_token: str | None = None,
        token_type: str | None = None,
    ) -> Credential:
        """Return a copy carrying a refreshed access token.

        Providers usually omit the refresh token on refresh; the current one
        is kept in that case.
        """
        return replace(
            self,
            access_token=access_token,
            expiry=expiry,
            refresh_token=refresh_token or self.refresh_token,
            token_type=token_type or self.token_type,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
        }
        if self.refresh_token:
            data["refresh_token"] = self.refresh_token
        data["expiry"] = self.expiry.isoformat() if self.expiry else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credential:
        """Create a Credential from its persisted form.

        Raises:
            KeyError: If access_token is missing
            ValueError: If a field has the wrong type or format
        """
        if not isinstance(data, dict):
            raise ValueError("credential document must be a JSON object")

        access_token = data["access_token"]
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token must be a non-empty string")

        refresh_token = data.get("refresh_token") or None
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise ValueError("refresh_token must be a string")

        token_type = data.get("token_type") or "Bearer"
        if not isinstance(token_type, str):
            raise ValueError("token_type must be a string")

        return cls(
            access_token=access_token,
            token_type=token_type,
            refresh_token=refresh_token,
            expiry=_parse_expiry(data.get("expiry")),
        )


def _parse_expiry(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("expiry must be a timestamp")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"expiry timestamp out of range: {value!r}") from e
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise ValueError(f"unsupported expiry value: {value!r}")
