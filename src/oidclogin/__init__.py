"""OpenID Connect login and ID token verification."""

from importlib.metadata import PackageNotFoundError, version

from .authorize import (
    AllOf,
    AnyOf,
    Authorizer,
    Contains,
    PermissionCondition,
    is_request_authorized,
)
from .config import (
    AuthorizerConfig,
    LoginConfig,
    OIDCConfig,
    VerificationConfig,
)
from .keyset import RemoteKeySet
from .models.oidc import IDToken
from .models.token import Token
from .provider import OIDCClient
from .verify import IDTokenVerifier

__all__ = [
    "AllOf",
    "AnyOf",
    "Authorizer",
    "AuthorizerConfig",
    "Contains",
    "IDToken",
    "IDTokenVerifier",
    "LoginConfig",
    "OIDCClient",
    "OIDCConfig",
    "PermissionCondition",
    "RemoteKeySet",
    "Token",
    "VerificationConfig",
    "__version__",
    "is_request_authorized",
]

__version__: str
"""The version string of oidclogin."""

try:
    __version__ = version("oidclogin")
except PackageNotFoundError:
    # package is not installed
    __version__ = "0.0.0"
