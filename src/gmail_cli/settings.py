"""Application configuration using pydantic-settings.

Every option can be set through a GMAIL_* environment variable (or a
.env file loaded at start-up) and overridden by command-line flags.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

GMAIL_READONLY_SCOPE = "https://www.googleapis.com/auth/gmail.readonly"


class Settings(BaseSettings):
    """Runtime settings for the authorization flow."""

    model_config = SettingsConfigDict(
        env_prefix="GMAIL_",
        case_sensitive=False,
        extra="ignore",
    )

    # Files
    credentials_file: Path = Path("credentials.json")
    token_file: Path = Path("token.json")

    # Requested access
    scopes: list[str] = Field(default_factory=lambda: [GMAIL_READONLY_SCOPE])

    # Local callback listener; the redirect URI is http://<host>:<port>
    callback_host: str = "localhost"
    callback_port: int = Field(default=8080, ge=0, le=65535)

    # Timeouts in seconds
    authorization_timeout: float = Field(default=300.0, gt=0)
    shutdown_grace_period: float = Field(default=5.0, ge=0)
    http_timeout: float = Field(default=30.0, gt=0)

    open_browser: bool = True
    use_pkce: bool = True
    log_level: str = "INFO"
