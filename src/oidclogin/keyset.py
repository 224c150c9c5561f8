"""Cached retrieval of a provider's signing keys."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import structlog
from cachetools import TTLCache
from httpx import AsyncClient, HTTPError
from structlog.stdlib import BoundLogger

from .clock import Clock, SystemClock
from .constants import KEYSET_LIFETIME
from .exceptions import FetchKeysError
from .models.oidc import JWK, JWKS

__all__ = ["RemoteKeySet"]


class RemoteKeySet:
    """The JWKS of a provider, fetched on demand and cached for a lifetime.

    Parameters
    ----------
    jwks_uri
        URL of the provider's JWKS, normally taken from its discovery
        document.
    http_client
        Client to use to make requests.
    logger
        Logger to use to report status information.  Defaults to the
        ``oidclogin`` logger.
    lifetime
        How long fetched keys are reused.  A zero lifetime fetches on every
        call.
    clock
        Source of the current time for cache expiration.

    Notes
    -----
    The cache holds a single entry.  The freshness check and any refetch
    happen under one `asyncio.Lock`, so concurrent verifications sharing
    this key set wait for a single fetch instead of each starting one, and
    never observe a partially replaced key list.
    """

    def __init__(
        self,
        jwks_uri: str,
        http_client: AsyncClient,
        logger: BoundLogger | None = None,
        *,
        lifetime: timedelta = KEYSET_LIFETIME,
        clock: Clock | None = None,
    ) -> None:
        self._jwks_uri = jwks_uri
        self._http_client = http_client
        self._logger = logger or structlog.get_logger("oidclogin")
        self._lifetime = lifetime
        self._clock = clock or SystemClock()
        self._cache = self._create_cache()
        self._lock = asyncio.Lock()

    @property
    def jwks_uri(self) -> str:
        """URL from which keys are fetched."""
        return self._jwks_uri

    async def clear(self) -> None:
        """Drop the cached keys so that the next call fetches them again."""
        async with self._lock:
            self._cache = self._create_cache()

    async def keys(self) -> list[JWK]:
        """Return the provider's signing keys.

        Returns
        -------
        list of JWK
            The cached keys if they are still fresh, otherwise the keys
            just fetched from the provider.

        Raises
        ------
        FetchKeysError
            Raised if the key set could not be retrieved or parsed.
        """
        async with self._lock:
            keys = self._cache.get(self._jwks_uri)
            if keys is not None:
                return keys
            keys = await self._fetch()
            self._cache[self._jwks_uri] = keys
            return keys

    def _create_cache(self) -> TTLCache[str, list[JWK]]:
        return TTLCache(1, self._lifetime.total_seconds(), timer=self._timer)

    async def _fetch(self) -> list[JWK]:
        """Retrieve the key set from the provider.

        Raises
        ------
        FetchKeysError
            Raised if the request failed or the reply was not a key set.
        """
        url = self._jwks_uri
        self._logger.debug("Fetching signing keys", jwks_uri=url)
        try:
            r = await self._http_client.get(url)
            r.raise_for_status()
        except HTTPError as e:
            raise FetchKeysError.from_exception(e) from e

        try:
            jwks = JWKS.model_validate(r.json())
        except ValueError as e:
            msg = f"No keys property in JWKS metadata for {url}"
            raise FetchKeysError(msg) from e
        self._logger.debug(
            "Fetched signing keys",
            jwks_uri=url,
            kids=[k.kid for k in jwks.keys],
        )
        return jwks.keys

    def _timer(self) -> float:
        return self._clock.now().timestamp()
