"""PKCE (Proof Key for Code Exchange) parameter generation.

Implements RFC 7636 with the S256 method so an intercepted authorization
code cannot be redeemed by anyone but the process that started the flow.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from gmail_cli.auth.models.security import PKCEParameters
from gmail_cli.auth.primitives.state import RandomSource, secure_random_bytes

# 64 random bytes encode to an 86-character verifier.
VERIFIER_BYTES = 64


class PKCEGenerator:
    """Generates PKCE parameters for one authorization attempt."""

    def __init__(self, source: RandomSource = secrets.token_bytes):
        self._source = source

    def generate_parameters(self) -> PKCEParameters:
        """Generate a code verifier and its S256 challenge.

        Raises:
            EntropyUnavailableError: If secure randomness is unavailable
        """
        code_verifier = self._generate_code_verifier()
        return PKCEParameters(
            code_verifier=code_verifier,
            code_challenge=self._generate_code_challenge(code_verifier),
            code_challenge_method="S256",
        )

    def _generate_code_verifier(self) -> str:
        """RFC 7636 Section 4.1: 43-128 unreserved characters.

        base64url output only uses [A-Za-z0-9-_], a subset of the allowed set.
        """
        raw = secure_random_bytes(VERIFIER_BYTES, self._source)
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    def _generate_code_challenge(self, code_verifier: str) -> str:
        """RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))."""
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
