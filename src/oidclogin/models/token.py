"""Representation of the cached token triple."""

from __future__ import annotations

from typing import Self

from pydantic import BaseModel, Field

__all__ = ["Token"]


class Token(BaseModel):
    """The tokens returned by the provider's token endpoint.

    This is the unit stored in a token cache.  It is replaced wholesale by
    a new login or refresh, and only the ID token is ever blanked in place
    (see `without_id_token`).
    """

    access_token: str = Field("", title="OAuth 2.0 access token")

    refresh_token: str = Field(
        "",
        title="Refresh token",
        description="Used to obtain new tokens without user interaction",
    )

    id_token: str = Field(
        "",
        title="OpenID Connect ID token",
        description="Signed JWT asserting the identity of the user",
    )

    def without_id_token(self) -> Self:
        """Return a copy with the ID token removed.

        The access and refresh tokens are preserved, so the next lookup will
        treat the ID token as absent but can still refresh.
        """
        return self.model_copy(update={"id_token": ""})
