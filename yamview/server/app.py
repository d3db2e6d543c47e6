"""
Cache service — exposes one TokenRegistryCache over HTTP.

  GET /token                 persistence record {lastUpdated, tokens}
  GET /token?refresh=true    force a refresh first (coalesced with any in flight)

Always 200: a failed refresh serves the stale snapshot, and with nothing
cached at all the body is {"lastUpdated", "tokens": {}, "error"}.
Other methods get aiohttp's 405.
"""

from aiohttp import web

from yamview.tokens.cache import TokenRegistryCache

CACHE_KEY = web.AppKey("token_cache", TokenRegistryCache)


async def handle_token(request: web.Request) -> web.Response:
    cache = request.app[CACHE_KEY]
    force = request.query.get("refresh", "").lower() == "true"
    print(f"[SERVICE] GET /token (refresh={force})")
    try:
        await cache.ensure_fresh(force_refresh=force)
    except Exception as e:
        # Always 200; serve whatever snapshot exists
        print(f"[SERVICE] ⚠️  Refresh raised {type(e).__name__}: {e} — serving what we have")
    record = cache.record()
    if "error" in record:
        print(f"[SERVICE] ⚠️  No cache available: {record['error']}")
    return web.json_response(record)


async def _close_source(app: web.Application):
    close = getattr(app[CACHE_KEY].source, "close", None)
    if close is not None:
        await close()


def create_app(cache: TokenRegistryCache) -> web.Application:
    app = web.Application()
    app[CACHE_KEY] = cache
    app.router.add_get("/token", handle_token)
    app.on_cleanup.append(_close_source)
    return app


def run_service(cache: TokenRegistryCache, host: str, port: int):
    """Blocking: serve until interrupted."""
    print(f"[SERVICE] Listening on http://{host}:{port}/token")
    web.run_app(create_app(cache), host=host, port=port, print=None)
