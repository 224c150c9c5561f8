"""Client for the endpoints of an OpenID Connect provider."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Self
from urllib.parse import urlencode

import structlog
from httpx import AsyncClient, HTTPError, Response
from structlog.stdlib import BoundLogger

from .clock import Clock
from .config import OIDCConfig, VerificationConfig
from .constants import HTTP_TIMEOUT, KEYSET_LIFETIME
from .exceptions import ProviderError, ProviderWebError, TokenExchangeError
from .keyset import RemoteKeySet
from .models.oidc import ProviderMetadata, TokenResponse
from .models.token import Token
from .verify import IDTokenVerifier

__all__ = ["OIDCClient"]


class OIDCClient:
    """Talk to an OpenID Connect provider on behalf of a client.

    Normally created with `discover`, which reads the provider's metadata.
    All verifiers created by one client share its key set, so the signing
    keys are fetched at most once per key set lifetime.

    Parameters
    ----------
    metadata
        Metadata of the provider.
    keyset
        Signing keys of the provider.
    http_client
        Client to use to make requests.
    logger
        Logger for any log messages.
    """

    @classmethod
    async def discover(
        cls,
        issuer: str,
        http_client: AsyncClient,
        logger: BoundLogger | None = None,
        *,
        keyset_lifetime: timedelta = KEYSET_LIFETIME,
        clock: Clock | None = None,
    ) -> Self:
        """Create a client from the provider's discovery document.

        Parameters
        ----------
        issuer
            Issuer URL of the provider.
        http_client
            Client to use to make requests.
        logger
            Logger for any log messages.
        keyset_lifetime
            How long to cache the provider's signing keys.
        clock
            Source of the current time for key set expiration.

        Returns
        -------
        OIDCClient
            Client for that provider.

        Raises
        ------
        ProviderError
            Raised if the metadata is invalid or is for a different issuer.
        ProviderWebError
            Raised if the metadata could not be retrieved.
        """
        logger = logger or structlog.get_logger("oidclogin")
        url = issuer.rstrip("/") + "/.well-known/openid-configuration"
        logger.debug("Retrieving provider metadata", url=url)
        try:
            r = await http_client.get(url, timeout=HTTP_TIMEOUT)
            r.raise_for_status()
        except HTTPError as e:
            raise ProviderWebError.from_exception(e) from e

        try:
            metadata = ProviderMetadata.model_validate(r.json())
        except ValueError as e:
            msg = f"Invalid OpenID Connect metadata at {url}"
            raise ProviderError(msg) from e
        if metadata.issuer != issuer:
            msg = (
                f"Issuer did not match the issuer returned by provider,"
                f" expected {issuer} got {metadata.issuer}"
            )
            raise ProviderError(msg)

        keyset = RemoteKeySet(
            metadata.jwks_uri,
            http_client,
            logger,
            lifetime=keyset_lifetime,
            clock=clock,
        )
        return cls(metadata, keyset, http_client, logger)

    def __init__(
        self,
        metadata: ProviderMetadata,
        keyset: RemoteKeySet,
        http_client: AsyncClient,
        logger: BoundLogger | None = None,
    ) -> None:
        self._metadata = metadata
        self._keyset = keyset
        self._http_client = http_client
        self._logger = logger or structlog.get_logger("oidclogin")

    @property
    def metadata(self) -> ProviderMetadata:
        """Metadata of the provider."""
        return self._metadata

    def authorization_url(
        self,
        config: OIDCConfig,
        *,
        redirect_uri: str,
        state: str,
        nonce: str,
        extra_params: Mapping[str, list[str]] | None = None,
    ) -> str:
        """Construct the URL to which to send the user to log in.

        Parameters
        ----------
        config
            Client configuration.
        redirect_uri
            Where the provider should send the user afterwards.
        state
            A random string used for CSRF protection.
        nonce
            Value the provider must copy into the issued ID token.
        extra_params
            Additional parameters, added in order after the standard ones.

        Returns
        -------
        str
            The encoded URL.
        """
        params: list[tuple[str, str]] = [
            ("client_id", config.client_id),
            ("nonce", nonce),
            ("redirect_uri", redirect_uri),
            ("response_type", "code"),
            ("scope", " ".join(config.scopes)),
            ("state", state),
        ]
        for key, values in (extra_params or {}).items():
            params.extend((key, v) for v in values)
        base_url = self._metadata.authorization_endpoint
        return f"{base_url}?{urlencode(params)}"

    async def exchange_code(
        self, config: OIDCConfig, code: str, redirect_uri: str
    ) -> Token:
        """Exchange an authorization code for tokens.

        Parameters
        ----------
        config
            Client configuration.
        code
            Code returned by a successful authentication.
        redirect_uri
            Redirect URI used in the authorization request.

        Returns
        -------
        Token
            The newly issued tokens.

        Raises
        ------
        TokenExchangeError
            Raised if the provider could not be reached, refused the code,
            or did not return an ID token.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        reply = await self._post_token(
            config, data, "Failed to obtain new token"
        )
        return Token(
            access_token=reply.access_token,
            refresh_token=reply.refresh_token or "",
            id_token=reply.id_token or "",
        )

    async def refresh_token(
        self, config: OIDCConfig, refresh_token: str
    ) -> Token:
        """Use a refresh token to get new tokens without user interaction.

        Parameters
        ----------
        config
            Client configuration.
        refresh_token
            Refresh token from a previous authentication.

        Returns
        -------
        Token
            The newly issued tokens.  If the provider did not rotate the
            refresh token, the old one is kept.

        Raises
        ------
        TokenExchangeError
            Raised if the provider could not be reached, refused the refresh
            token, or did not return an ID token.
        """
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        reply = await self._post_token(config, data, "Failed to refresh token")
        return Token(
            access_token=reply.access_token,
            refresh_token=reply.refresh_token or refresh_token,
            id_token=reply.id_token or "",
        )

    def verifier(self, config: VerificationConfig) -> IDTokenVerifier:
        """Create a verifier for ID tokens from this provider."""
        return IDTokenVerifier(
            self._metadata.issuer, self._keyset, config, self._logger
        )

    async def _post_token(
        self, config: OIDCConfig, data: dict[str, str], action: str
    ) -> TokenResponse:
        """Send a grant to the token endpoint and parse the reply.

        Parameters
        ----------
        config
            Client configuration, supplying the client credentials.
        data
            Grant-specific form parameters.
        action
            Description of the operation, used as the prefix of exception
            messages.

        Raises
        ------
        TokenExchangeError
            Raised if the request failed or the reply was not usable.
        """
        token_url = self._metadata.token_endpoint
        logger = self._logger.bind(
            token_url=token_url, grant_type=data["grant_type"]
        )
        data = {
            **data,
            "client_id": config.client_id,
            "client_secret": config.client_secret.get_secret_value(),
        }
        logger.info("Requesting tokens from provider")
        try:
            r = await self._http_client.post(
                token_url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=HTTP_TIMEOUT,
            )
        except HTTPError as e:
            msg = f"{action}: {type(e).__name__}: {e!s}"
            raise TokenExchangeError(msg, method="POST", url=token_url) from e

        # If the call failed, try to extract an error from the reply.
        if not r.is_success:
            msg = f"{action}: {r.status_code} {r.reason_phrase}"
            error = self._extract_error(r)
            if error:
                msg += f": {error}"
            raise TokenExchangeError(
                msg,
                method="POST",
                url=token_url,
                status=r.status_code,
                body=r.text,
            )

        try:
            reply = TokenResponse.model_validate(r.json())
        except ValueError as e:
            msg = f"{action}: response from {token_url} not valid"
            logger.warning("Invalid token reply", error=str(e))
            raise TokenExchangeError(
                msg, method="POST", url=token_url, status=r.status_code
            ) from e
        if not reply.id_token:
            msg = f"{action}: no id_token in token reply from {token_url}"
            raise TokenExchangeError(msg, method="POST", url=token_url)
        return reply

    @staticmethod
    def _extract_error(r: Response) -> str | None:
        try:
            result: Any = r.json()
        except ValueError:
            return None
        if not isinstance(result, dict) or "error" not in result:
            return None
        description = result.get("error_description")
        if description:
            return f"{result['error']}: {description}"
        return str(result["error"])
