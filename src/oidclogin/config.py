"""Configuration for oidclogin.

Loading configuration from files or the environment is left to the
application.  These models only describe and validate the settings that the
library components take.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from .clock import Clock, SystemClock
from .constants import ALGORITHM

if TYPE_CHECKING:
    from .authorize import PermissionCondition

__all__ = [
    "AuthorizerConfig",
    "LoginConfig",
    "OIDCConfig",
    "VerificationConfig",
]


class OIDCConfig(BaseModel):
    """Configuration for talking to an OpenID Connect provider.

    This is carried by the token cache so that a client can be rebuilt for
    the cached credentials.
    """

    model_config = ConfigDict(extra="forbid")

    provider: str = Field(
        ...,
        title="Issuer URL",
        description="Issuer of the provider, used for discovery",
        examples=["https://accounts.google.com"],
    )

    client_id: str = Field(..., title="OpenID Connect client ID")

    client_secret: SecretStr = Field(
        SecretStr(""), title="OpenID Connect client secret"
    )

    scopes: list[str] = Field(
        ["openid", "email"], title="Scopes to request during login"
    )


class LoginConfig(BaseModel):
    """Configuration for the interactive token source."""

    model_config = ConfigDict(extra="forbid")

    nonce_check: bool = Field(
        True,
        title="Check ID token nonce",
        description=(
            "Whether a cached or refreshed ID token must carry the nonce of"
            " this login session"
        ),
    )

    extra_auth_request_params: dict[str, list[str]] = Field(
        {},
        title="Additional login parameters",
        description=(
            "Parameters appended, in order, to the authorization URL after"
            " the standard ones"
        ),
    )

    @field_validator("extra_auth_request_params", mode="before")
    @classmethod
    def _listify_values(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {
                k: [val] if isinstance(val, str) else val
                for k, val in v.items()
            }
        return v


@dataclass
class VerificationConfig:
    """Configuration for an `~oidclogin.verify.IDTokenVerifier`."""

    client_id: str = ""
    """Expected audience of the token, normally the client ID.

    There is no way to skip the audience check; verification fails with a
    configuration error if this is empty.
    """

    claim_nonce: str = ""
    """If set, the nonce the token must carry."""

    supported_signing_algs: list[str] = field(
        default_factory=lambda: [ALGORITHM]
    )
    """Algorithms that may be used to sign the token."""

    clock: Clock = field(default_factory=SystemClock)
    """Source of the current time for the expiration check."""

    def __post_init__(self) -> None:
        if not self.supported_signing_algs:
            self.supported_signing_algs = [ALGORITHM]


@dataclass
class AuthorizerConfig:
    """Configuration for an `~oidclogin.authorize.Authorizer`."""

    provider: str
    """Issuer URL of the provider that issues the bearer tokens."""

    client_id: str
    """Audience the bearer tokens must be issued for."""

    condition: PermissionCondition
    """Condition the permissions claim must satisfy."""

    permissions_claim: str = "perms"
    """Claim holding the list of permissions of the subject."""
