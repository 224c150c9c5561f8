"""Tests for cache-aware token acquisition."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from urllib.parse import quote_plus

import pytest
from httpx import AsyncClient

from oidclogin.config import LoginConfig, OIDCConfig
from oidclogin.exceptions import (
    BrowserError,
    CacheError,
    CallbackError,
    TokenExchangeError,
)
from oidclogin.login import CallbackServer, OIDCTokenSource
from oidclogin.models.token import Token
from oidclogin.provider import OIDCClient

from ..support.constants import (
    TEST_CLIENT_ID,
    TEST_ISSUER,
    TEST_NONCE,
    TEST_STATE,
)
from ..support.jwt import create_id_token
from ..support.login import FixedTokenGenerator, MockBrowser, MockTokenCache
from ..support.oidc import MockProvider


async def create_token_source(
    http_client: AsyncClient,
    callback_server: CallbackServer,
    cache: MockTokenCache,
    browser: MockBrowser,
    config: LoginConfig | None = None,
) -> OIDCTokenSource:
    """Create a token source for the mock provider with a fixed nonce."""
    client = await OIDCClient.discover(
        TEST_ISSUER, http_client, keyset_lifetime=timedelta(seconds=0)
    )
    return OIDCTokenSource(
        cache,
        client,
        callback_server,
        config=config,
        browser=browser,
        token_generator=FixedTokenGenerator(),
        nonce=TEST_NONCE,
    )


def create_token(**claims: object) -> Token:
    return Token(
        access_token="some-access",
        refresh_token="some-refresh",
        id_token=create_id_token(**claims),
    )


@pytest.mark.asyncio
async def test_cached(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    token = create_token()
    cache = MockTokenCache(oidc_config, token)
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )

    assert await source.get_token() == token
    assert await source.get_token() == token
    assert cache.saved == []
    assert browser.urls == []
    assert provider.token_requests == []


@pytest.mark.asyncio
async def test_cache_error(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config)
    cache.get_error = CacheError("Cannot read cache")
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )
    token = create_token()
    provider.add_token_reply(token=token)

    assert await source.get_token() == token
    assert cache.saved == [token]
    await browser.wait()
    assert browser.responses[0].status_code == 200
    assert "Successfully authorized" in browser.responses[0].text
    assert provider.token_requests == [
        {
            "grant_type": ["authorization_code"],
            "code": ["some-code"],
            "redirect_uri": [callback_server.redirect_url],
            "client_id": [TEST_CLIENT_ID],
            "client_secret": [oidc_config.client_secret.get_secret_value()],
        }
    ]


@pytest.mark.asyncio
async def test_empty_cache(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config)
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )
    token = create_token()
    provider.add_token_reply(token=token)

    assert await source.get_token() == token
    assert cache.saved == [token]

    # The new token is now cached and valid.
    assert await source.get_token() == token
    assert cache.saved == [token]
    assert len(browser.urls) == 1


@pytest.mark.asyncio
async def test_wrong_nonce_refresh(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config, create_token(nonce="wrong-nonce"))
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )
    token = create_token()
    provider.add_token_reply(token=token)

    assert await source.get_token() == token
    assert cache.saved == [token]
    assert browser.urls == []
    assert provider.token_requests[0]["grant_type"] == ["refresh_token"]
    assert provider.token_requests[0]["refresh_token"] == ["some-refresh"]


@pytest.mark.asyncio
async def test_wrong_nonce_refresh_error(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config, create_token(nonce="wrong-nonce"))
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )
    token = Token(
        access_token="new-access",
        refresh_token="new-refresh",
        id_token=create_id_token(),
    )
    provider.add_token_reply(400, json={"error": "bad_request"})
    provider.add_token_reply(token=token)

    assert await source.get_token() == token
    assert cache.saved == [token]
    assert len(browser.urls) == 1
    grants = [r["grant_type"] for r in provider.token_requests]
    assert grants == [["refresh_token"], ["authorization_code"]]


@pytest.mark.asyncio
async def test_wrong_nonce_refresh_invalid(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config, create_token(nonce="wrong-nonce"))
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )
    token = create_token()

    # The refreshed ID token must also carry the session nonce.
    provider.add_token_reply(token=create_token(nonce="other-nonce"))
    provider.add_token_reply(token=token)

    assert await source.get_token() == token
    assert cache.saved == [token]
    assert len(browser.urls) == 1


@pytest.mark.asyncio
async def test_invalid_cached_token(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    browser = MockBrowser()
    token = create_token()

    # Failures other than a nonce mismatch do not try a refresh.
    for cached in (
        create_token(exp=1),
        create_token(aud="other-client"),
        Token(access_token="some-access", refresh_token="some-refresh"),
    ):
        cache = MockTokenCache(oidc_config, cached)
        source = await create_token_source(
            http_client, callback_server, cache, browser
        )
        provider.add_token_reply(token=token)
        assert await source.get_token() == token
        assert cache.saved == [token]

    grants = [r["grant_type"] for r in provider.token_requests]
    assert grants == [["authorization_code"]] * 3
    assert len(browser.urls) == 3


@pytest.mark.asyncio
async def test_exchange_error(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config)
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )
    provider.add_token_reply(503)

    with pytest.raises(TokenExchangeError) as excinfo:
        await source.get_token()
    assert "Failed to obtain new token" in str(excinfo.value)
    assert "503 Service Unavailable" in str(excinfo.value)
    assert cache.saved == []

    # The browser was still told that the redirect was received.
    await browser.wait()
    assert browser.responses[0].status_code == 200


@pytest.mark.asyncio
async def test_extra_params(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    config = LoginConfig(
        extra_auth_request_params={
            "access_type": "offline",
            "prompt": ["consent", "select_account"],
        }
    )
    cache = MockTokenCache(oidc_config)
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser, config
    )
    provider.add_token_reply(token=create_token())

    await source.get_token()
    redirect_uri = quote_plus(callback_server.redirect_url)
    assert browser.urls == [
        f"{provider.authorization_url}?client_id={TEST_CLIENT_ID}"
        f"&nonce={TEST_NONCE}&redirect_uri={redirect_uri}"
        f"&response_type=code&scope=openid+email&state={TEST_STATE}"
        "&access_type=offline&prompt=consent&prompt=select_account"
    ]


@pytest.mark.asyncio
async def test_nonce_check_disabled(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    token = create_token(nonce="other-nonce")
    cache = MockTokenCache(oidc_config, token)
    browser = MockBrowser()
    config = LoginConfig(nonce_check=False)
    source = await create_token_source(
        http_client, callback_server, cache, browser, config
    )

    assert await source.get_token() == token
    assert cache.saved == []
    assert provider.token_requests == []


@pytest.mark.asyncio
async def test_generated_nonce(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    client = await OIDCClient.discover(TEST_ISSUER, http_client)
    cache = MockTokenCache(oidc_config)
    browser = MockBrowser()
    source = OIDCTokenSource(cache, client, callback_server, browser=browser)
    assert source.nonce

    # The session nonce is fixed across logins.
    for _ in range(2):
        provider.add_token_reply(token=create_token(nonce=source.nonce))
        await source.clear_id_token()
        await source.get_token()
    assert len(browser.urls) == 2
    for url in browser.urls:
        assert f"nonce={source.nonce}" in url
    assert len(cache.saved) == 3


@pytest.mark.asyncio
async def test_save_error(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config)
    cache.save_error = CacheError("Disk full")
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )
    provider.add_token_reply(token=create_token())

    with pytest.raises(CacheError):
        await source.get_token()
    assert len(provider.token_requests) == 1


@pytest.mark.asyncio
async def test_state_mismatch(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config)
    browser = MockBrowser({"code": "some-code", "state": "forged-state"})
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )

    with pytest.raises(CallbackError):
        await source.get_token()
    assert provider.token_requests == []
    assert cache.saved == []
    await browser.wait()
    assert browser.responses[0].status_code == 400
    assert "Authorization failed" in browser.responses[0].text


@pytest.mark.asyncio
async def test_browser_error(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config)
    source = await create_token_source(
        http_client, callback_server, cache, MockBrowser(fail=True)
    )

    with pytest.raises(BrowserError):
        await source.get_token()
    assert provider.token_requests == []

    # The failed login is no longer waiting for a redirect.
    async with AsyncClient() as client:
        r = await client.get(
            callback_server.redirect_url,
            params={"code": "some-code", "state": TEST_STATE},
        )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_cancel(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config)
    browser = MockBrowser(redirect=False)
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )

    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0.5):
            await source.get_token()
    assert len(browser.urls) == 1
    assert cache.saved == []

    # A later login can still use the callback server.
    browser.redirect = True
    token = create_token()
    provider.add_token_reply(token=token)
    assert await source.get_token() == token


@pytest.mark.asyncio
async def test_clear_id_token(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config)
    browser = MockBrowser()
    source = await create_token_source(
        http_client, callback_server, cache, browser
    )

    await source.clear_id_token()
    assert cache.saved == []

    token = create_token()
    cache.token = token
    await source.clear_id_token()
    assert cache.saved == [
        Token(access_token="some-access", refresh_token="some-refresh")
    ]
    result = await cache.get_token()
    assert result
    assert result.access_token == token.access_token
    assert result.refresh_token == token.refresh_token
    assert result.id_token == ""


@pytest.mark.asyncio
async def test_create(
    provider: MockProvider,
    http_client: AsyncClient,
    callback_server: CallbackServer,
    oidc_config: OIDCConfig,
) -> None:
    cache = MockTokenCache(oidc_config)
    source = await OIDCTokenSource.create(
        cache, http_client, callback_server=callback_server
    )
    assert source.nonce
    assert source.nonce != TEST_NONCE
    assert provider.config_route.call_count == 1

    # A token from this session is accepted from the cache.
    token = create_token(nonce=source.nonce)
    cache.token = token
    assert await source.get_token() == token
    assert cache.saved == []
