"""Constants for oidclogin."""

from datetime import timedelta

__all__ = [
    "ALGORITHM",
    "CALLBACK_CLOSE_DELAY",
    "CALLBACK_START_TIMEOUT",
    "DEFAULT_REDIRECT_URL",
    "DEFAULT_TOKEN_CACHE_PATH",
    "GOOGLE_ISSUER",
    "GOOGLE_ISSUER_NO_SCHEME",
    "HTTP_TIMEOUT",
    "KEYSET_LIFETIME",
]

ALGORITHM = "RS256"
"""Default (and usually only) JWT signing algorithm accepted for ID tokens."""

CALLBACK_CLOSE_DELAY = 5
"""Seconds before the callback page in the browser closes itself."""

CALLBACK_START_TIMEOUT = 10.0
"""Timeout (in seconds) for the callback server to start listening."""

DEFAULT_REDIRECT_URL = "http://127.0.0.1:8393/callback"
"""Default address and path of the local callback listener."""

DEFAULT_TOKEN_CACHE_PATH = "$HOME/.oidc_keys"
"""Default directory for cached tokens, expanded from the environment."""

GOOGLE_ISSUER = "https://accounts.google.com"
"""Issuer of Google accounts, which sometimes omits the scheme in tokens."""

GOOGLE_ISSUER_NO_SCHEME = "accounts.google.com"
"""The ``iss`` value Google sometimes puts in ID tokens instead."""

HTTP_TIMEOUT = 20.0
"""Timeout (in seconds) for outbound HTTP requests to the provider."""

KEYSET_LIFETIME = timedelta(hours=1)
"""How long a fetched JWKS is reused before it is fetched again."""
