"""OAuth2 client-credentials authentication.

Bulk data servers issue short-lived bearer tokens in exchange for a
client id and secret sent with HTTP Basic auth.
"""

from __future__ import annotations

from typing import Sequence

import httpx

from core.errors import AuthenticationError


class ClientCredentialsAuthenticator:
    """Requests bearer tokens from an OAuth2 token endpoint."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        scopes: Sequence[str] = (),
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._scopes = tuple(scope for scope in scopes if scope)

    def request_token(self, http_client: httpx.Client) -> str:
        """Request a new access token.

        Args:
            http_client: Shared HTTP client.

        Returns:
            Bearer access token.

        Raises:
            AuthenticationError: If the token endpoint rejects the request.
        """
        form = {"grant_type": "client_credentials"}
        if self._scopes:
            form["scope"] = " ".join(self._scopes)
        try:
            response = http_client.post(
                self._token_url,
                data=form,
                auth=(self._client_id, self._client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as error:
            raise AuthenticationError(
                f"Error authenticating with {self._token_url}: {error}. Check network access."
            ) from error
        if response.status_code >= 300:
            raise AuthenticationError(
                f"Error authenticating with {self._token_url}: HTTP {response.status_code}. "
                "Check client id and secret.",
                status_code=response.status_code,
            )
        return _parse_access_token(response, self._token_url)


def _parse_access_token(response: httpx.Response, token_url: str) -> str:
    try:
        payload = response.json()
    except ValueError as error:
        raise AuthenticationError(
            f"Token response from {token_url} is not JSON: {error}."
        ) from error
    token = payload.get("access_token") if isinstance(payload, dict) else None
    if not isinstance(token, str) or not token:
        raise AuthenticationError(
            f"Token response from {token_url} is missing 'access_token'."
        )
    return token
