"""Collaborators that start an interactive login."""

from __future__ import annotations

import asyncio
import webbrowser
from abc import ABCMeta, abstractmethod

from ..exceptions import BrowserError
from ..util import random_128_bits

__all__ = [
    "BrowserOpener",
    "RandomTokenGenerator",
    "TokenGenerator",
    "WebBrowserOpener",
]


class BrowserOpener(metaclass=ABCMeta):
    """Sends the user to the provider's login page."""

    @abstractmethod
    async def open(self, url: str) -> None:
        """Open the URL for the user.

        Raises
        ------
        BrowserError
            Raised if the URL could not be opened.
        """


class WebBrowserOpener(BrowserOpener):
    """Open the URL in the user's default web browser."""

    async def open(self, url: str) -> None:
        try:
            opened = await asyncio.to_thread(webbrowser.open_new, url)
        except webbrowser.Error as e:
            raise BrowserError(f"Failed to open browser: {e!s}") from e
        if not opened:
            raise BrowserError(f"No browser available to open {url}")


class TokenGenerator(metaclass=ABCMeta):
    """Source of unguessable values for the state and nonce parameters."""

    @abstractmethod
    def generate(self) -> str:
        """Return a new random value."""


class RandomTokenGenerator(TokenGenerator):
    """Generate 128 random bits, base64-encoded."""

    def generate(self) -> str:
        return random_128_bits()
