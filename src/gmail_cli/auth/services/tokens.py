"""Token endpoint client: code exchange and refresh.

Implements RFC 6749 token endpoint interactions for an installed
application (client secret in the form body, PKCE verifier on exchange).
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from gmail_cli.auth.models.config import ClientConfig
from gmail_cli.auth.models.credential import Credential
from gmail_cli.auth.models.errors import (
    TokenError,
    TokenExchangeError,
    TokenRefreshError,
)
from gmail_cli.auth.models.tokens import (
    CodeExchangeRequest,
    RefreshRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)

_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class TokenClient:
    """Talks to the provider's token endpoint.

    Uses application/x-www-form-urlencoded bodies as RFC 6749 requires.
    """

    def __init__(self, client_config: ClientConfig, timeout: float = 30.0):
        """Initialize the token client.

        Args:
            client_config: Client registration holding the token endpoint
            timeout: HTTP request timeout in seconds
        """
        self.client_config = client_config
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,
    ) -> Credential:
        """Exchange an authorization code for a credential.

        Args:
            code: Authorization code from the redirect
            redirect_uri: Redirect URI used in the authorization request
            code_verifier: PKCE verifier matching the challenge sent

        Returns:
            Credential: The newly issued credential

        Raises:
            TokenExchangeError: On network failure or provider rejection
        """
        request = CodeExchangeRequest(
            code=code,
            redirect_uri=redirect_uri,
            client_id=self.client_config.client_id,
            client_secret=self.client_config.client_secret,
            code_verifier=code_verifier,
        )
        logger.debug(
            f"Exchanging authorization code at {self.client_config.token_endpoint}"
        )

        try:
            response = await self._post(request.to_form_data())
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"HTTP error during token exchange: {e}") from e

        token_response = self._parse_token_response(response, TokenExchangeError)
        if not token_response.is_success():
            raise TokenExchangeError(
                f"Token exchange rejected: {_describe(token_response)}",
                error=token_response.error,
                description=token_response.error_description,
            )

        logger.info("Authorization code exchanged for credential")
        return token_response.to_credential()

    async def refresh(self, credential: Credential) -> Credential:
        """Exchange the credential's refresh token for a new access token.

        Args:
            credential: Credential holding the refresh token

        Returns:
            Credential: Copy of credential with the new access token and
                expiry (and the rotated refresh token if one was issued)

        Raises:
            TokenRefreshError: If there is no refresh token, on network
                failure, or when the provider rejects the refresh token
        """
        if not credential.can_refresh():
            raise TokenRefreshError("Credential has no refresh token")

        request = RefreshRequest(
            refresh_token=credential.refresh_token,
            client_id=self.client_config.client_id,
            client_secret=self.client_config.client_secret,
        )
        logger.debug(f"Refreshing access token at {self.client_config.token_endpoint}")

        try:
            response = await self._post(request.to_form_data())
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"HTTP error during token refresh: {e}") from e

        token_response = self._parse_token_response(response, TokenRefreshError)
        if not token_response.is_success():
            raise TokenRefreshError(
                f"Token refresh rejected: {_describe(token_response)}",
                error=token_response.error,
                description=token_response.error_description,
            )

        return credential.with_refreshed(
            access_token=token_response.access_token,
            expiry=token_response.calculate_expiry(),
            refresh_token=token_response.refresh_token,
            token_type=token_response.token_type,
        )

    async def _post(self, form_data: dict[str, str]) -> httpx.Response:
        return await self._http_client.post(
            self.client_config.token_endpoint,
            data=form_data,
            headers=_HEADERS,
        )

    def _parse_token_response(
        self, response: httpx.Response, error_class: type[TokenError]
    ) -> TokenResponse:
        """Parse a token endpoint response, success or error form.

        Raises:
            error_class: If the body is not a JSON token response
        """
        try:
            response_data = response.json()
        except ValueError as e:
            raise error_class(
                f"Token endpoint returned {response.status_code} "
                f"with a non-JSON body"
            ) from e

        if not isinstance(response_data, dict):
            raise error_class("Invalid token response format: expected an object")

        try:
            token_response = TokenResponse(**response_data)
        except ValidationError as e:
            raise error_class(f"Invalid token response format: {e}") from e

        if response.status_code == 200:
            if not token_response.access_token and not token_response.is_error():
                raise error_class("Token response missing required access_token")
        else:
            logger.warning(
                f"Token endpoint answered {response.status_code}: "
                f"{_describe(token_response)}"
            )
            if not token_response.is_error():
                # Non-200 without an OAuth error body still counts as failure.
                token_response = token_response.model_copy(
                    update={"error": f"http_{response.status_code}"}
                )

        return token_response

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()


def _describe(token_response: TokenResponse) -> str:
    if token_response.error_description:
        return f"{token_response.error} - {token_response.error_description}"
    return token_response.error or "unknown_error"
