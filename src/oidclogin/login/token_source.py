"""Cache-aware acquisition of tokens through an interactive login."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Self

import structlog
from httpx import AsyncClient
from structlog.stdlib import BoundLogger

from ..clock import Clock, SystemClock
from ..config import LoginConfig, OIDCConfig, VerificationConfig
from ..constants import KEYSET_LIFETIME
from ..exceptions import (
    CacheError,
    NonceMismatchError,
    TokenExchangeError,
    VerifyTokenError,
)
from ..models.token import Token
from ..provider import OIDCClient
from .browser import (
    BrowserOpener,
    RandomTokenGenerator,
    TokenGenerator,
    WebBrowserOpener,
)
from .cache import TokenCache
from .callback import CallbackServer

__all__ = ["OIDCTokenSource"]


class OIDCTokenSource:
    """Return a valid token, logging the user in through a browser if needed.

    A cached token is returned as long as its ID token verifies.  If the ID
    token was issued for a different login session (its nonce does not
    match), the refresh token is used to get new tokens without user
    interaction.  In every other case, the user is sent through the
    provider's login page and the authorization code is received by a local
    callback server.  New tokens are always saved to the cache before they
    are returned.

    The nonce identifying the login session is fixed for the lifetime of
    the token source.  It is sent with every authorization request and
    required in every ID token accepted from the cache or a refresh.

    Parameters
    ----------
    cache
        Storage for tokens, which also provides the client configuration.
    client
        Client for the provider.
    callback_server
        Server that receives the authorization redirect.
    config
        Login settings.
    browser
        Used to send the user to the provider's login page.
    token_generator
        Source of random state values, and of the nonce if none is given.
    nonce
        Nonce of the login session.
    clock
        Source of the current time for ID token expiration.
    logger
        Logger for any log messages.

    Notes
    -----
    Calls on one token source are serialized, but separate token sources
    sharing the same cache may each start an interactive login.
    """

    @classmethod
    async def create(
        cls,
        cache: TokenCache,
        http_client: AsyncClient,
        *,
        callback_server: CallbackServer | None = None,
        config: LoginConfig | None = None,
        keyset_lifetime: timedelta = KEYSET_LIFETIME,
        logger: BoundLogger | None = None,
    ) -> Self:
        """Create a token source for the client configured in the cache.

        Parameters
        ----------
        cache
            Storage for tokens, which also provides the client
            configuration.
        http_client
            Client to use to talk to the provider.
        callback_server
            Server that receives the authorization redirect.  By default,
            one is bound to the default redirect URL.
        config
            Login settings.
        keyset_lifetime
            How long to cache the provider's signing keys.
        logger
            Logger for any log messages.

        Raises
        ------
        CallbackError
            Raised if the callback server could not be bound.
        ProviderError
            Raised if the provider metadata could not be retrieved.
        """
        client = await OIDCClient.discover(
            cache.config.provider,
            http_client,
            logger,
            keyset_lifetime=keyset_lifetime,
        )
        callback_server = callback_server or CallbackServer(logger=logger)
        return cls(
            cache, client, callback_server, config=config, logger=logger
        )

    def __init__(
        self,
        cache: TokenCache,
        client: OIDCClient,
        callback_server: CallbackServer,
        *,
        config: LoginConfig | None = None,
        browser: BrowserOpener | None = None,
        token_generator: TokenGenerator | None = None,
        nonce: str | None = None,
        clock: Clock | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._cache = cache
        self._client = client
        self._callback_server = callback_server
        self._config = config or LoginConfig()
        self._browser = browser or WebBrowserOpener()
        self._token_generator = token_generator or RandomTokenGenerator()
        self._nonce = nonce or self._token_generator.generate()
        self._logger = logger or structlog.get_logger("oidclogin")
        self._lock = asyncio.Lock()

        verification_config = VerificationConfig(
            client_id=self._oidc_config.client_id,
            claim_nonce=self._nonce if self._config.nonce_check else "",
            clock=clock or SystemClock(),
        )
        self._verifier = client.verifier(verification_config)

    @property
    def nonce(self) -> str:
        """Nonce of the login session."""
        return self._nonce

    @property
    def _oidc_config(self) -> OIDCConfig:
        return self._cache.config

    async def clear_id_token(self) -> None:
        """Remove the ID token from the cache.

        The access and refresh tokens are kept.  The next call to
        `get_token` will not accept the cached token and will log in again.

        Raises
        ------
        CacheError
            Raised if the cached token could not be read or written.
        """
        async with self._lock:
            token = await self._cache.get_token()
            if not token:
                return
            await self._cache.save_token(token.without_id_token())
            self._logger.info("Cleared cached ID token")

    async def get_token(self) -> Token:
        """Return a valid token.

        Returns
        -------
        Token
            The cached token if it is still valid, otherwise a refreshed or
            newly issued one.

        Raises
        ------
        BrowserError
            Raised if the browser could not be opened for login.
        CacheError
            Raised if a new token could not be saved to the cache.
        CallbackError
            Raised if the authorization redirect was invalid.
        TokenExchangeError
            Raised if the authorization code could not be exchanged for
            tokens.
        """
        async with self._lock:
            token = await self._get_cached_token()
            if token:
                try:
                    await self._verifier.verify(token.id_token)
                except NonceMismatchError as e:
                    self._logger.info(
                        "Cached ID token is from another session",
                        error=str(e),
                    )
                    refreshed = await self._refresh(token)
                    if refreshed:
                        await self._save(refreshed)
                        return refreshed
                except VerifyTokenError as e:
                    self._logger.info("Cached ID token invalid", error=str(e))
                else:
                    return token

            token = await self._login()
            await self._save(token)
            return token

    async def _get_cached_token(self) -> Token | None:
        try:
            token = await self._cache.get_token()
        except CacheError as e:
            self._logger.warning("Cannot read token cache", error=str(e))
            return None
        if not token:
            self._logger.info("No cached token")
        return token

    async def _login(self) -> Token:
        """Send the user through the provider's login page.

        Raises
        ------
        BrowserError
            Raised if the browser could not be opened.
        CallbackError
            Raised if the authorization redirect was invalid.
        TokenExchangeError
            Raised if the authorization code could not be exchanged.
        """
        state = self._token_generator.generate()
        redirect_uri = self._callback_server.redirect_url
        url = self._client.authorization_url(
            self._oidc_config,
            redirect_uri=redirect_uri,
            state=state,
            nonce=self._nonce,
            extra_params=self._config.extra_auth_request_params,
        )

        await self._callback_server.start()
        future = self._callback_server.expect(state)
        try:
            self._logger.info("Opening browser for login", login_url=url)
            await self._browser.open(url)
            code = await future
        finally:
            self._callback_server.forget(future)

        return await self._client.exchange_code(
            self._oidc_config, code, redirect_uri
        )

    async def _refresh(self, token: Token) -> Token | None:
        """Get new tokens with the refresh token.

        Returns
        -------
        Token or None
            The new tokens, or `None` if they could not be obtained or the
            new ID token did not verify.
        """
        if not token.refresh_token:
            return None
        try:
            refreshed = await self._client.refresh_token(
                self._oidc_config, token.refresh_token
            )
            await self._verifier.verify(refreshed.id_token)
        except (TokenExchangeError, VerifyTokenError) as e:
            self._logger.warning("Cannot refresh token", error=str(e))
            return None
        self._logger.info("Refreshed token")
        return refreshed

    async def _save(self, token: Token) -> None:
        try:
            await self._cache.save_token(token)
        except CacheError as e:
            self._logger.error("Cannot save token to cache", error=str(e))
            raise
