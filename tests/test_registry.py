"""
Registry sources against local aiohttp servers standing in for the
community API and for another process's cache service.
"""

import asyncio

import pytest
from aiohttp import test_utils, web

from fakes import OTHER_TOKEN, PROPERTY, FakeRegistrySource, token_record
from yamview.errors import UpstreamRegistryError
from yamview.server.app import create_app
from yamview.tokens.cache import TokenRegistryCache
from yamview.tokens.registry import AUTH_HEADER, CacheServiceClient, CommunityApiClient

API_KEY = "test-key-0123456789"


def _community_app(payload, status=200):
    seen = []

    async def tokens(request):
        seen.append(request.headers.get(AUTH_HEADER))
        return web.json_response(payload, status=status)

    app = web.Application()
    app.router.add_get("/tokens", tokens)
    return app, seen


async def _with_server(app, use):
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        return await use(str(server.make_url("")))
    finally:
        await server.close()


async def _fetch(client):
    try:
        return await client.fetch_tokens()
    finally:
        await client.close()


def test_community_api_sends_key_and_indexes_tokens():
    payload = [token_record(PROPERTY), {"shortName": "no address"}, token_record(OTHER_TOKEN, "RealToken 7 Oak Ave")]
    app, seen = _community_app(payload)

    entries = asyncio.run(_with_server(app, lambda url: _fetch(CommunityApiClient(url, API_KEY))))
    assert seen == [API_KEY]
    assert set(entries) == {PROPERTY, OTHER_TOKEN}
    assert entries[OTHER_TOKEN].short_name == "RealToken 7 Oak Ave"


@pytest.mark.parametrize("payload, status", [
    ({"error": "boom"}, 500),
    ({"tokens": []}, 200),
])
def test_community_api_unusable_answers_raise(payload, status):
    app, _seen = _community_app(payload, status)
    with pytest.raises(UpstreamRegistryError):
        asyncio.run(_with_server(app, lambda url: _fetch(CommunityApiClient(url, API_KEY))))


@pytest.mark.parametrize("base_url, key", [("", API_KEY), ("http://localhost:1", "")])
def test_community_api_requires_url_and_key(base_url, key):
    with pytest.raises(UpstreamRegistryError):
        asyncio.run(_fetch(CommunityApiClient(base_url, key)))


def test_unreachable_registry_raises():
    with pytest.raises(UpstreamRegistryError):
        asyncio.run(_fetch(CommunityApiClient("http://127.0.0.1:9", API_KEY)))


def test_cache_service_client_reads_another_cache():
    upstream = TokenRegistryCache(FakeRegistrySource([token_record(PROPERTY)]))

    async def use(url):
        cache = TokenRegistryCache(CacheServiceClient(url))
        try:
            return await cache.lookup(PROPERTY)
        finally:
            await cache.source.close()

    meta = asyncio.run(_with_server(create_app(upstream), use))
    assert meta.short_name == "RealToken 42 Main St"
    assert meta.price_usd == 50.0


def test_cache_service_without_data_raises():
    upstream = TokenRegistryCache(FakeRegistrySource(error="down"))
    with pytest.raises(UpstreamRegistryError, match="no data"):
        asyncio.run(_with_server(create_app(upstream), lambda url: _fetch(CacheServiceClient(url, force_refresh=True))))
