"""Interactive, cache-aware acquisition of OpenID Connect tokens."""

from .browser import (
    BrowserOpener,
    RandomTokenGenerator,
    TokenGenerator,
    WebBrowserOpener,
)
from .cache import TokenCache
from .callback import CallbackServer
from .disk_cache import DiskTokenCache
from .token_source import OIDCTokenSource

__all__ = [
    "BrowserOpener",
    "CallbackServer",
    "DiskTokenCache",
    "OIDCTokenSource",
    "RandomTokenGenerator",
    "TokenCache",
    "TokenGenerator",
    "WebBrowserOpener",
]
