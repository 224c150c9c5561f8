"""Exceptions for oidclogin."""

from __future__ import annotations

from typing import ClassVar

from fastapi import status
from safir.slack.blockkit import SlackException, SlackWebException

__all__ = [
    "BrowserError",
    "CacheError",
    "CallbackError",
    "ConfigurationError",
    "ExpiredTokenError",
    "FetchKeysError",
    "InsufficientScopeError",
    "InvalidAudienceError",
    "InvalidIssuerError",
    "InvalidRequestError",
    "InvalidTokenClaimsError",
    "InvalidTokenError",
    "MalformedTokenError",
    "NonceMismatchError",
    "OAuthBearerError",
    "OAuthError",
    "PayloadMismatchError",
    "ProviderError",
    "ProviderWebError",
    "SignatureVerificationError",
    "TokenExchangeError",
    "UnknownAlgorithmError",
    "UnknownKeyIdError",
    "VerifyTokenError",
]


class ConfigurationError(Exception):
    """The library was configured in a way that cannot work."""


class OAuthError(Exception):
    """An error authorizing a bearer token.

    Raised by the authorizer for problems with the ``Authorization`` header
    or the token it carries.
    """

    error: ClassVar[str] = "invalid_request"
    """The RFC 6749 or RFC 6750 error code for this exception."""

    message: ClassVar[str] = "Unknown error"
    """The summary message to use when logging this error."""


class OAuthBearerError(OAuthError):
    """An error that can be returned as a ``WWW-Authenticate`` challenge.

    The string form of this exception is suitable for use as the
    ``error_description`` attribute of a ``WWW-Authenticate`` header.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    """The status code to use for this HTTP error."""


class InvalidRequestError(OAuthBearerError):
    """The provided Authorization header could not be parsed."""

    error = "invalid_request"
    message = "Invalid request"


class InvalidTokenError(OAuthBearerError):
    """The provided bearer token failed verification."""

    error = "invalid_token"
    message = "Invalid token"
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidTokenClaimsError(InvalidTokenError):
    """One of the claims in the token is of an invalid format."""


class InsufficientScopeError(OAuthBearerError):
    """The provided token does not carry the required permissions."""

    error = "insufficient_scope"
    message = "Permission denied"
    status_code = status.HTTP_403_FORBIDDEN


class ProviderError(SlackException):
    """Something failed while talking to the OpenID Connect provider."""


class ProviderWebError(SlackWebException, ProviderError):
    """A web request to the OpenID Connect provider failed."""


class CallbackError(ProviderError):
    """The authorization redirect was missing data or had the wrong state."""


class TokenExchangeError(ProviderWebError):
    """The token endpoint refused a grant or could not be reached."""


class BrowserError(Exception):
    """The browser could not be opened to start authentication."""


class CacheError(SlackException):
    """Reading or writing the token cache failed."""


class VerifyTokenError(SlackException):
    """Base exception class for failure in verifying a token."""


class MalformedTokenError(VerifyTokenError):
    """The token is not a structurally valid JWT."""


class InvalidIssuerError(VerifyTokenError):
    """The token was issued by a different provider."""


class InvalidAudienceError(VerifyTokenError):
    """The token was not issued for this client."""


class ExpiredTokenError(VerifyTokenError):
    """The token has expired."""


class UnknownAlgorithmError(VerifyTokenError):
    """The token is not signed with an accepted algorithm."""


class UnknownKeyIdError(VerifyTokenError):
    """No key in the provider's key set matches the token's key ID."""


class FetchKeysError(SlackWebException, VerifyTokenError):
    """Cannot retrieve the keys from an issuer."""


class SignatureVerificationError(VerifyTokenError):
    """No candidate key could verify the token signature.

    Parameters
    ----------
    message
        Summary of the failure.
    errors
        The error from each candidate key, in the order they were tried.
    """

    def __init__(self, message: str, errors: list[str]) -> None:
        self.errors = errors
        if errors:
            message += ": " + "; ".join(errors)
        super().__init__(message)


class PayloadMismatchError(VerifyTokenError):
    """The verified payload differs from the payload parsed earlier.

    This indicates a bug in the verification code, not a forged token.
    """


class NonceMismatchError(VerifyTokenError):
    """The token nonce does not match the nonce of this login session."""
