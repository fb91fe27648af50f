"""CSRF state token generation and validation.

The state token is embedded in the authorization request and echoed back
in the redirect; a callback carrying any other value is forged or replayed.
"""

from __future__ import annotations

import base64
import secrets
from collections.abc import Callable

from gmail_cli.auth.models.errors import EntropyUnavailableError, StateMismatchError

RandomSource = Callable[[int], bytes]

STATE_TOKEN_BYTES = 32


def secure_random_bytes(length: int, source: RandomSource = secrets.token_bytes) -> bytes:
    """Read bytes from the OS CSPRNG.

    Raises:
        EntropyUnavailableError: If the source fails or returns short data.
            There is no fallback to a weaker generator.
    """
    try:
        data = source(length)
    except (NotImplementedError, OSError) as e:
        raise EntropyUnavailableError(
            f"Secure random source unavailable: {e}"
        ) from e

    if len(data) != length:
        raise EntropyUnavailableError(
            f"Secure random source returned {len(data)} of {length} bytes"
        )
    return data


class StateTokenGenerator:
    """Produces single-use, URL-safe state tokens with 256 bits of entropy."""

    def __init__(
        self,
        num_bytes: int = STATE_TOKEN_BYTES,
        source: RandomSource = secrets.token_bytes,
    ):
        if num_bytes < 16:
            raise ValueError("state tokens need at least 128 bits of entropy")
        self._num_bytes = num_bytes
        self._source = source

    def generate(self) -> str:
        """Generate a new state token.

        Raises:
            EntropyUnavailableError: If secure randomness is unavailable
        """
        raw = secure_random_bytes(self._num_bytes, self._source)
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def validate_state(expected: str, actual: str | None) -> None:
    """Validate the callback state matches the generated token exactly.

    Args:
        expected: State token generated for this attempt
        actual: State value received in the redirect

    Raises:
        StateMismatchError: If the values differ or the state is missing
    """
    if actual is None or not secrets.compare_digest(
        expected.encode("utf-8"), actual.encode("utf-8")
    ):
        raise StateMismatchError(
            "State parameter mismatch - possible CSRF attack or replayed redirect"
        )
