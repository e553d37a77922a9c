"""Unit tests for OAuth client-credentials authentication."""

from __future__ import annotations

import base64

import httpx
import pytest

from core.errors import AuthenticationError
from export_api.auth import ClientCredentialsAuthenticator

_TOKEN_URL = "https://export.test/auth/token"


def test_request_token_uses_basic_auth_and_scopes() -> None:
    """The token request should send credentials and requested scopes."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"access_token": "abc"})

    authenticator = ClientCredentialsAuthenticator("id", "secret", _TOKEN_URL, scopes=("system/*.read",))
    token = authenticator.request_token(httpx.Client(transport=httpx.MockTransport(handler)))

    expected_auth = "Basic " + base64.b64encode(b"id:secret").decode("ascii")
    assert (token, requests[0].headers["Authorization"], b"scope=system" in requests[0].content) == (
        "abc",
        expected_auth,
        True,
    )


def test_request_token_rejects_missing_access_token() -> None:
    """A token response without access_token should fail."""
    authenticator = ClientCredentialsAuthenticator("id", "secret", _TOKEN_URL)
    http_client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))

    with pytest.raises(AuthenticationError, match="access_token"):
        authenticator.request_token(http_client)

    assert True
