"""OpenID Connect provider mocks for testing."""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qs

import respx
from httpx import Request, Response

from oidclogin.models.oidc import JWKS
from oidclogin.models.token import Token

from .constants import TEST_ISSUER, TEST_KEYPAIR, TEST_KID
from .keypair import RSAKeyPair

__all__ = ["MockProvider"]


class MockProvider:
    """Mock OpenID Connect provider.

    Installs respx routes for discovery, the key set, and the token
    endpoint.  Replies from the token endpoint are queued with
    `add_token_reply` and returned in order, and the form parameters of
    each token request are recorded.

    Parameters
    ----------
    respx_mock
        The mock router.
    issuer
        Issuer URL of the provider.
    jwks
        Key set to publish.  Defaults to `TEST_KEYPAIR` under `TEST_KID`.
    """

    def __init__(
        self,
        respx_mock: respx.Router,
        *,
        issuer: str = TEST_ISSUER,
        jwks: JWKS | None = None,
    ) -> None:
        self.issuer = issuer
        self.jwks = jwks or TEST_KEYPAIR.public_key_as_jwks(TEST_KID)
        self.token_requests: list[dict[str, list[str]]] = []
        self._token_replies: list[Response] = []

        config_url = f"{issuer}/.well-known/openid-configuration"
        self.config_route = respx_mock.get(config_url).mock(
            side_effect=self.get_config
        )
        self.jwks_route = respx_mock.get(self.jwks_uri).mock(
            side_effect=self.get_jwks
        )
        self.token_route = respx_mock.post(self.token_url).mock(
            side_effect=self.post_token
        )

    @property
    def authorization_url(self) -> str:
        return f"{self.issuer}/auth"

    @property
    def jwks_uri(self) -> str:
        return f"{self.issuer}/jwks.json"

    @property
    def token_url(self) -> str:
        return f"{self.issuer}/token"

    def add_token_reply(
        self,
        status_code: int = 200,
        *,
        token: Token | None = None,
        json: Any = None,
    ) -> None:
        """Queue a reply from the token endpoint.

        Parameters
        ----------
        status_code
            Status code of the reply.
        token
            Tokens to return in a successful reply.
        json
            Body of the reply, used if ``token`` is not given.
        """
        if token:
            json = {
                "access_token": token.access_token,
                "refresh_token": token.refresh_token,
                "id_token": token.id_token,
                "token_type": "Bearer",
                "expires_in": 3600,
            }
        self._token_replies.append(Response(status_code, json=json))

    def get_config(self, request: Request) -> Response:
        return Response(
            200,
            json={
                "issuer": self.issuer,
                "authorization_endpoint": self.authorization_url,
                "token_endpoint": self.token_url,
                "jwks_uri": self.jwks_uri,
                "id_token_signing_alg_values_supported": ["RS256"],
            },
        )

    def get_jwks(self, request: Request) -> Response:
        return Response(200, json=self.jwks.model_dump(exclude_none=True))

    def post_token(self, request: Request) -> Response:
        assert request.headers["Accept"] == "application/json"
        self.token_requests.append(parse_qs(request.read().decode()))
        assert self._token_replies, "Unexpected request to token endpoint"
        return self._token_replies.pop(0)

    def rotate_keys(self, keypair: RSAKeyPair, kid: str) -> None:
        """Replace the published key set with a single new key."""
        self.jwks = keypair.public_key_as_jwks(kid)
