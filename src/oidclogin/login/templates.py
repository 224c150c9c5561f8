"""Pages returned to the browser by the callback server."""

from __future__ import annotations

from fastapi.templating import Jinja2Templates
from jinja2 import Environment, PackageLoader

__all__ = ["templates"]

templates = Jinja2Templates(
    env=Environment(
        loader=PackageLoader("oidclogin.login", package_path="templates"),
        autoescape=True,
    ),
)
"""The template manager."""
