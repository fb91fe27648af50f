"""OAuth client configuration loaded from a Google client-secrets file."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gmail_cli.auth.models.errors import ConfigError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class ClientConfig(BaseModel):
    """Identity-provider client registration.

    Immutable for the lifetime of the process.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(min_length=1)
    client_secret: str | None = None
    scopes: tuple[str, ...] = ()
    authorization_endpoint: str = GOOGLE_AUTH_URI
    token_endpoint: str = GOOGLE_TOKEN_URI


def load_client_config(path: str | Path, scopes: Sequence[str]) -> ClientConfig:
    """Load a client-secrets JSON file as downloaded from the Google console.

    Accepts both the "installed" (desktop) and "web" application layouts.

    Args:
        path: Path to the client-secrets file
        scopes: Scopes to request during authorization

    Returns:
        ClientConfig: Parsed client configuration

    Raises:
        ConfigError: If the file is missing, malformed or incomplete
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Client credentials file not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read client credentials file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Client credentials file {path} is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Client credentials file {path} must hold a JSON object")

    section = raw.get("installed") or raw.get("web")
    if not isinstance(section, dict):
        raise ConfigError(
            f"Client credentials file {path} has no 'installed' or 'web' section"
        )

    try:
        config = ClientConfig(
            client_id=section.get("client_id", ""),
            client_secret=section.get("client_secret"),
            scopes=tuple(scopes),
            authorization_endpoint=section.get("auth_uri") or GOOGLE_AUTH_URI,
            token_endpoint=section.get("token_uri") or GOOGLE_TOKEN_URI,
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid client credentials in {path}: {e}") from e

    logger.debug(f"Loaded client configuration for client {config.client_id}")
    return config
