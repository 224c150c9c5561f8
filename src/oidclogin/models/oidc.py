"""Representation of data for OpenID Connect support."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import ALGORITHM

__all__ = [
    "JWK",
    "JWKS",
    "IDToken",
    "ProviderMetadata",
    "TokenResponse",
]


class IDToken(BaseModel):
    """The parsed claims of an ID token.

    Only the claims needed for verification are broken out.  The full claim
    set is available as ``claims`` for extracting custom claims, and the raw
    payload is kept so that it can be compared with the payload returned by
    signature verification.
    """

    model_config = ConfigDict(frozen=True)

    iss: str = Field("", title="Issuer")

    sub: str = Field("", title="Subject")

    aud: list[str] = Field([], title="Audience")

    exp: datetime | None = Field(None, title="Expiration")

    nonce: str = Field("", title="Nonce from the authorization request")

    claims: dict[str, Any] = Field(..., title="All claims in the token")

    payload: bytes = Field(..., title="Raw payload", repr=False)

    @classmethod
    def from_payload(cls, payload: bytes) -> Self:
        """Parse the decoded payload segment of a JWT.

        Parameters
        ----------
        payload
            The base64-decoded payload.

        Returns
        -------
        IDToken
            The parsed claims.

        Raises
        ------
        ValueError
            Raised if the payload is not a JSON object or a registered claim
            has the wrong type.  `pydantic.ValidationError` is a subclass.
        """
        claims = json.loads(payload)
        if not isinstance(claims, dict):
            raise ValueError("JWT payload is not a JSON object")
        known = ("iss", "sub", "aud", "exp", "nonce")
        data = {k: claims[k] for k in known if k in claims}
        return cls.model_validate(
            {**data, "claims": claims, "payload": payload}
        )

    @field_validator("aud", mode="before")
    @classmethod
    def _normalize_audience(cls, v: Any) -> Any:
        return [v] if isinstance(v, str) else v

    @field_validator("exp", mode="before")
    @classmethod
    def _parse_expiration(cls, v: Any) -> Any:
        if isinstance(v, int | float) and not isinstance(v, bool):
            try:
                return datetime.fromtimestamp(v, tz=UTC)
            except (OverflowError, OSError) as e:
                raise ValueError(f"exp {v} is out of range") from e
        return v


class JWK(BaseModel):
    """The schema for a JSON Web Key (RFCs 7517 and 7518).

    Only RSA keys can be used for verification, but other key types are
    accepted here so that a mixed key set still parses.
    """

    model_config = ConfigDict(extra="allow")

    kty: str = Field(..., title="Key type", examples=["RSA"])

    use: str | None = Field(None, title="Key usage", examples=["sig"])

    alg: str | None = Field(None, title="Algorithm", examples=[ALGORITHM])

    kid: str | None = Field(
        None,
        title="Key ID",
        description=(
            "A name for the key, also used in the header of a JWT signed by"
            " that key. Allows the signer to have multiple valid keys at a"
            " time and thus support key rotation."
        ),
        examples=["some-key-id"],
    )

    n: str | None = Field(
        None,
        title="RSA modulus",
        description=(
            "Big-endian modulus component of the RSA public key encoded in"
            " URL-safe base64 without trailing padding"
        ),
    )

    e: str | None = Field(
        None,
        title="RSA exponent",
        description=(
            "Big-endian exponent component of the RSA public key encoded in"
            " URL-safe base64 without trailing padding"
        ),
        examples=["AQAB"],
    )


class JWKS(BaseModel):
    """Schema for a provider's JSON Web Key Set."""

    keys: list[JWK] = Field(..., title="Signing keys")


class ProviderMetadata(BaseModel):
    """The parts of ``/.well-known/openid-configuration`` this client uses."""

    issuer: str = Field(
        ..., title="iss value for JWTs", examples=["https://example.com/"]
    )

    authorization_endpoint: str = Field(..., title="URL to start login")

    token_endpoint: str = Field(..., title="URL to get token")

    jwks_uri: str = Field(..., title="URL to get signing keys")

    userinfo_endpoint: str | None = Field(
        None, title="URL to get user metadata"
    )

    id_token_signing_alg_values_supported: list[str] = Field(
        [ALGORITHM], title="Supported JWT signing algorithms"
    )


class TokenResponse(BaseModel):
    """A successful reply from the provider's token endpoint."""

    access_token: str = Field(..., title="Access token")

    token_type: str = Field("Bearer", title="Type of token")

    refresh_token: str | None = Field(None, title="Refresh token")

    id_token: str | None = Field(None, title="Identity token")

    expires_in: int | None = Field(None, title="Expiration in seconds")
