"""Test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
import respx
from httpx import AsyncClient
from pydantic import SecretStr

from oidclogin.config import OIDCConfig
from oidclogin.login import CallbackServer

from .support.constants import (
    TEST_CLIENT_ID,
    TEST_CLIENT_SECRET,
    TEST_ISSUER,
    TEST_REDIRECT_URL,
)
from .support.oidc import MockProvider


@pytest_asyncio.fixture
async def callback_server() -> AsyncIterator[CallbackServer]:
    """Return a callback server listening on a free local port."""
    server = CallbackServer(TEST_REDIRECT_URL)
    yield server
    await server.aclose()


@pytest_asyncio.fixture
async def http_client() -> AsyncIterator[AsyncClient]:
    """Return an ``httpx.AsyncClient`` for talking to the mock provider."""
    async with AsyncClient() as client:
        yield client


@pytest.fixture
def oidc_config() -> OIDCConfig:
    """Return the client configuration registered with the mock provider."""
    return OIDCConfig(
        provider=TEST_ISSUER,
        client_id=TEST_CLIENT_ID,
        client_secret=SecretStr(TEST_CLIENT_SECRET),
    )


@pytest.fixture
def provider(respx_mock: respx.Router) -> MockProvider:
    """Mock out the endpoints of the OpenID Connect provider."""
    return MockProvider(respx_mock)


@pytest.fixture
def respx_mock() -> Iterator[respx.Router]:
    """Mock all httpx requests except those to local callback servers.

    Not every test uses every mocked provider endpoint, so routes are not
    required to be called.
    """
    with respx.mock(assert_all_called=False) as mock:
        mock.route(host="127.0.0.1").pass_through()
        yield mock
