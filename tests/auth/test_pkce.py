import base64
import hashlib

import pytest

from gmail_cli.auth.models.errors import EntropyUnavailableError
from gmail_cli.auth.models.security import PKCEParameters
from gmail_cli.auth.primitives.pkce import PKCEGenerator


class TestPKCEGenerator:
    def test_generate_parameters_crypto_requirements(self) -> None:
        # Arrange
        generator = PKCEGenerator()

        # Act
        params = generator.generate_parameters()

        # Assert RFC 7636 requirements
        assert 43 <= len(params.code_verifier) <= 128
        assert 43 <= len(params.code_challenge) <= 128
        assert params.code_challenge_method == "S256"

        # Verify code_challenge is base64url(sha256(code_verifier))
        expected_challenge = (
            base64.urlsafe_b64encode(
                hashlib.sha256(params.code_verifier.encode("ascii")).digest()
            )
            .decode("ascii")
            .rstrip("=")
        )
        assert params.code_challenge == expected_challenge

    def test_generate_parameters_uniqueness(self) -> None:
        # Arrange
        generator = PKCEGenerator()

        # Act - Generate multiple parameters
        params1 = generator.generate_parameters()
        params2 = generator.generate_parameters()

        # Assert - Each generation is unique
        assert params1.code_verifier != params2.code_verifier
        assert params1.code_challenge != params2.code_challenge

    def test_verifier_not_shown_in_repr(self) -> None:
        params = PKCEGenerator().generate_parameters()
        assert params.code_verifier not in repr(params)

    def test_broken_random_source_raises_entropy_unavailable(self) -> None:
        # Arrange
        def broken_source(n: int) -> bytes:
            raise OSError("getrandom failed")

        # Act & Assert
        with pytest.raises(EntropyUnavailableError):
            PKCEGenerator(source=broken_source).generate_parameters()


class TestPKCEParameters:
    def test_short_verifier_rejected(self) -> None:
        with pytest.raises(ValueError, match="code_verifier"):
            PKCEParameters(code_verifier="short", code_challenge="x" * 43)

    def test_plain_method_rejected(self) -> None:
        with pytest.raises(ValueError, match="S256"):
            PKCEParameters(
                code_verifier="v" * 43,
                code_challenge="c" * 43,
                code_challenge_method="plain",
            )
