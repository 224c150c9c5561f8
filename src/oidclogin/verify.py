"""Verification of OpenID Connect ID tokens."""

from __future__ import annotations

import json
from typing import Any

import jwt
import structlog
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from structlog.stdlib import BoundLogger

from .config import VerificationConfig
from .constants import GOOGLE_ISSUER, GOOGLE_ISSUER_NO_SCHEME
from .exceptions import (
    ConfigurationError,
    ExpiredTokenError,
    InvalidAudienceError,
    InvalidIssuerError,
    MalformedTokenError,
    NonceMismatchError,
    PayloadMismatchError,
    SignatureVerificationError,
    UnknownAlgorithmError,
    UnknownKeyIdError,
)
from .keyset import RemoteKeySet
from .models.oidc import JWK, IDToken
from .util import base64_to_number, base64url_decode

__all__ = ["IDTokenVerifier"]


class IDTokenVerifier:
    """Verify ID tokens issued by an OpenID Connect provider.

    Checks are done from cheapest to most expensive.  Structure and claims
    are checked before any keys are retrieved, so a token that is
    malformed, expired, for the wrong client, or signed with an algorithm
    that is not accepted never causes a request to the provider.

    Parameters
    ----------
    issuer
        Expected issuer of tokens.
    keyset
        Signing keys of the issuer.
    config
        Verification settings.
    logger
        Logger for any log messages.
    """

    def __init__(
        self,
        issuer: str,
        keyset: RemoteKeySet,
        config: VerificationConfig,
        logger: BoundLogger | None = None,
    ) -> None:
        self._issuer = issuer
        self._keyset = keyset
        self._config = config
        self._logger = logger or structlog.get_logger("oidclogin")

    @property
    def config(self) -> VerificationConfig:
        """Settings used for verification."""
        return self._config

    async def verify(self, raw_id_token: str) -> IDToken:
        """Verify an ID token.

        Parameters
        ----------
        raw_id_token
            The encoded JWT.

        Returns
        -------
        IDToken
            The claims of the token, once verified.

        Raises
        ------
        ConfigurationError
            Raised if no client ID was configured.
        FetchKeysError
            Raised if the signing keys could not be retrieved.
        VerifyTokenError
            Raised if the token is invalid.  The subclass indicates which
            check failed.
        """
        header, token = self._parse(raw_id_token)
        self._check_issuer(token)
        self._check_audience(token)
        self._check_expiration(token)

        # The header of an untrusted token is only used to select keys.
        algorithm = header.get("alg")
        if algorithm not in self._config.supported_signing_algs:
            msg = f"Token signed with unsupported algorithm {algorithm}"
            raise UnknownAlgorithmError(msg)
        key_id = header.get("kid") or None
        keys = await self._keyset.keys()
        candidates = [k for k in keys if (k.kid or None) == key_id]
        if not candidates:
            msg = f"Issuer {self._issuer} has no kid {key_id}"
            raise UnknownKeyIdError(msg)

        payload = self._verify_signature(raw_id_token, algorithm, candidates)
        if payload != token.payload:
            raise PayloadMismatchError("Verified payload differs from token")

        nonce = self._config.claim_nonce
        if nonce and token.nonce != nonce:
            msg = f"Nonce mismatch, expected {nonce} but got {token.nonce}"
            raise NonceMismatchError(msg)

        self._logger.debug("Verified ID token", sub=token.sub, kid=key_id)
        return token

    def _check_audience(self, token: IDToken) -> None:
        client_id = self._config.client_id
        if not client_id:
            msg = "No client ID configured for ID token verification"
            raise ConfigurationError(msg)
        if client_id not in token.aud:
            msg = f"Expected audience {client_id}, got {token.aud}"
            raise InvalidAudienceError(msg)

    def _check_expiration(self, token: IDToken) -> None:
        now = self._config.clock.now()
        if token.exp is None:
            raise ExpiredTokenError("Token has no expiration")
        if token.exp <= now:
            msg = f"Token expired at {token.exp.isoformat()}"
            raise ExpiredTokenError(msg)

    def _check_issuer(self, token: IDToken) -> None:
        if token.iss == self._issuer:
            return

        # Google sometimes issues tokens without the URL scheme.
        google = (GOOGLE_ISSUER, GOOGLE_ISSUER_NO_SCHEME)
        if (self._issuer, token.iss) == google:
            return

        msg = f"Expected issuer {self._issuer}, got {token.iss}"
        raise InvalidIssuerError(msg)

    def _parse(self, raw_id_token: str) -> tuple[dict[str, Any], IDToken]:
        """Decode the header and payload of a token without verifying it.

        Raises
        ------
        MalformedTokenError
            Raised if the token is not a JWT or its header or payload cannot
            be decoded.
        """
        parts = raw_id_token.split(".")
        if len(parts) < 2:
            msg = f"Token has {len(parts)} segments, expected 3"
            raise MalformedTokenError(msg)
        try:
            token = IDToken.from_payload(base64url_decode(parts[1]))
        except ValueError as e:
            msg = f"Cannot parse token payload: {e}"
            raise MalformedTokenError(msg) from e
        try:
            header = json.loads(base64url_decode(parts[0]))
        except ValueError as e:
            msg = f"Cannot parse token header: {e}"
            raise MalformedTokenError(msg) from e
        if not isinstance(header, dict):
            raise MalformedTokenError("Token header is not a JSON object")
        return header, token

    def _verify_signature(
        self, raw_id_token: str, algorithm: str, keys: list[JWK]
    ) -> bytes:
        """Check the signature with each candidate key in turn.

        Returns
        -------
        bytes
            The signed payload, from the first key that verifies.

        Raises
        ------
        SignatureVerificationError
            Raised if no key verifies the signature, with the failure for
            each key.
        """
        errors = []
        for key in keys:
            try:
                pem = self._get_key_as_pem(key)
                decoded = jwt.PyJWS().decode_complete(
                    raw_id_token, key=pem, algorithms=[algorithm]
                )
            except (jwt.PyJWTError, ValueError) as e:
                errors.append(f"kid {key.kid}: {e!s}")
                continue
            return decoded["payload"]
        raise SignatureVerificationError("Failed to verify signature", errors)

    @staticmethod
    def _get_key_as_pem(key: JWK) -> str:
        """Convert an RSA JWK to a PEM-encoded public key.

        Raises
        ------
        ValueError
            Raised if the key is not a usable RSA key.
        """
        if key.kty != "RSA" or not key.n or not key.e:
            raise ValueError(f"unsupported key type {key.kty}")
        e = base64_to_number(key.e)
        n = base64_to_number(key.n)
        public_key = rsa.RSAPublicNumbers(e, n).public_key()
        return public_key.public_bytes(
            encoding=Encoding.PEM, format=PublicFormat.SubjectPublicKeyInfo
        ).decode()
