"""Authorization of bearer tokens by a permissions claim."""

from __future__ import annotations

from abc import ABCMeta, abstractmethod
from typing import Self

import structlog
from httpx import AsyncClient
from pydantic import TypeAdapter, ValidationError
from starlette.requests import Request
from structlog.stdlib import BoundLogger

from .config import AuthorizerConfig, VerificationConfig
from .exceptions import (
    InsufficientScopeError,
    InvalidRequestError,
    InvalidTokenClaimsError,
    InvalidTokenError,
    VerifyTokenError,
)
from .provider import OIDCClient
from .verify import IDTokenVerifier

__all__ = [
    "AllOf",
    "AnyOf",
    "Authorizer",
    "Contains",
    "PermissionCondition",
    "is_request_authorized",
]

_PERMISSIONS_ADAPTER = TypeAdapter(list[str])
"""Strict decoder for the permissions claim."""


class PermissionCondition(metaclass=ABCMeta):
    """A condition on the set of permissions held by a user."""

    @abstractmethod
    def is_satisfied_by(self, permissions: set[str]) -> bool:
        """Whether the permissions satisfy this condition."""

    @abstractmethod
    def __str__(self) -> str:
        """Readable form of the condition, used in error messages."""


class Contains(PermissionCondition):
    """Satisfied if the given permission is held."""

    def __init__(self, permission: str) -> None:
        self.permission = permission

    def is_satisfied_by(self, permissions: set[str]) -> bool:
        return self.permission in permissions

    def __str__(self) -> str:
        return self.permission


class AllOf(PermissionCondition):
    """Satisfied if every one of the conditions is."""

    def __init__(self, *conditions: PermissionCondition) -> None:
        self.conditions = conditions

    def is_satisfied_by(self, permissions: set[str]) -> bool:
        return all(c.is_satisfied_by(permissions) for c in self.conditions)

    def __str__(self) -> str:
        return "(" + " AND ".join(str(c) for c in self.conditions) + ")"


class AnyOf(PermissionCondition):
    """Satisfied if at least one of the conditions is."""

    def __init__(self, *conditions: PermissionCondition) -> None:
        self.conditions = conditions

    def is_satisfied_by(self, permissions: set[str]) -> bool:
        return any(c.is_satisfied_by(permissions) for c in self.conditions)

    def __str__(self) -> str:
        return "(" + " OR ".join(str(c) for c in self.conditions) + ")"


class Authorizer:
    """Check that a bearer token grants the required permissions.

    Parameters
    ----------
    config
        Authorizer settings.
    verifier
        Verifier for tokens of the configured provider and client.
    logger
        Logger for any log messages.
    """

    @classmethod
    async def create(
        cls,
        config: AuthorizerConfig,
        http_client: AsyncClient,
        logger: BoundLogger | None = None,
    ) -> Self:
        """Create an authorizer by discovering the configured provider.

        Raises
        ------
        ProviderError
            Raised if the provider metadata could not be retrieved.
        """
        client = await OIDCClient.discover(
            config.provider, http_client, logger
        )
        verifier = client.verifier(
            VerificationConfig(client_id=config.client_id)
        )
        return cls(config, verifier, logger)

    def __init__(
        self,
        config: AuthorizerConfig,
        verifier: IDTokenVerifier,
        logger: BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._verifier = verifier
        self._logger = logger or structlog.get_logger("oidclogin")

    async def is_authorized(self, token: str) -> None:
        """Check that a token grants the configured permissions.

        Parameters
        ----------
        token
            Encoded ID token presented as a bearer token.

        Raises
        ------
        InsufficientScopeError
            Raised if the permissions in the token do not satisfy the
            configured condition.
        InvalidTokenClaimsError
            Raised if the permissions claim is not a list of strings.
        InvalidTokenError
            Raised if the token did not verify.
        """
        try:
            id_token = await self._verifier.verify(token)
        except VerifyTokenError as e:
            msg = f"Unauthenticated. Verification failed: {e!s}"
            raise InvalidTokenError(msg) from e

        claim = self._config.permissions_claim
        try:
            permissions = _PERMISSIONS_ADAPTER.validate_python(
                id_token.claims.get(claim), strict=True
            )
        except ValidationError as e:
            msg = (
                f"Wrong type of {claim} claim for user {id_token.sub},"
                " expected list of strings"
            )
            raise InvalidTokenClaimsError(msg) from e

        condition = self._config.condition
        if not condition.is_satisfied_by(set(permissions)):
            msg = (
                f"Unauthorized. User {id_token.sub} has permissions"
                f" {sorted(permissions)} and needs {condition!s}"
            )
            self._logger.info(
                "Permission denied", sub=id_token.sub, condition=str(condition)
            )
            raise InsufficientScopeError(msg)


async def is_request_authorized(
    request: Request,
    authorizer: Authorizer,
    header_name: str = "Authorization",
) -> None:
    """Check that the bearer token in a request grants the permissions.

    Parameters
    ----------
    request
        Incoming request.
    authorizer
        Authorizer to check the token with.
    header_name
        Header containing the bearer token.

    Raises
    ------
    InvalidRequestError
        Raised if the header is missing or does not contain a bearer token.
    OAuthBearerError
        Raised if the token was not authorized.  This is an
        `~oidclogin.exceptions.InvalidTokenClaimsError` if the permissions
        claim is not a list of strings.
    """
    header = request.headers.get(header_name, "").strip()
    if not header:
        raise InvalidRequestError(f"Unauthenticated. No {header_name} header")
    if " " not in header:
        msg = f"Unauthenticated. {header_name} header is not a bearer token"
        raise InvalidRequestError(msg)
    auth_type, token = header.split(None, 1)
    if auth_type.lower() != "bearer":
        msg = f"Unauthenticated. {header_name} header is not a bearer token"
        raise InvalidRequestError(msg)
    await authorizer.is_authorized(token.strip())
