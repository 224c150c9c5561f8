"""Interface to storage for acquired tokens."""

from __future__ import annotations

from abc import ABCMeta, abstractmethod

from ..config import OIDCConfig
from ..models.token import Token

__all__ = ["TokenCache"]


class TokenCache(metaclass=ABCMeta):
    """Storage for the token triple of one client.

    The cache also carries the client configuration, so that a token
    source can be built from nothing more than a cache.
    """

    @property
    @abstractmethod
    def config(self) -> OIDCConfig:
        """Configuration of the client whose tokens are stored."""

    @abstractmethod
    async def get_token(self) -> Token | None:
        """Return the stored token.

        Returns
        -------
        Token or None
            The stored token, or `None` if nothing has been stored yet.

        Raises
        ------
        CacheError
            Raised if the stored token could not be read.
        """

    @abstractmethod
    async def save_token(self, token: Token) -> None:
        """Store a token, replacing any stored token.

        Raises
        ------
        CacheError
            Raised if the token could not be stored.
        """
