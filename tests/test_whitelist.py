"""
Whitelist lookup against a local GraphQL stand-in.
"""

import asyncio

from aiohttp import test_utils, web

from fakes import BUYER
from yamview.tokens.whitelist import check_whitelist_status


def _graphql_app(user_ids, status=200):
    queries = []

    async def graphql(request):
        body = await request.json()
        queries.append(body)
        data = {"data": {"realTokenGnosis": {"account": {"userIds": user_ids}}}}
        return web.json_response(data, status=status)

    app = web.Application()
    app.router.add_post("/graphql", graphql)
    return app, queries


def _check(app, address=BUYER):
    async def run():
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            return await check_whitelist_status(str(server.make_url("/graphql")), address)
        finally:
            await server.close()
    return asyncio.run(run())


def test_registered_account_is_whitelisted():
    app, queries = _graphql_app([{"userId": "42", "attributeKeys": []}])
    assert _check(app) is True
    assert queries[0]["operationName"] == "getWlProperties"
    assert BUYER.lower() in queries[0]["query"]


def test_account_without_user_ids_is_not_whitelisted():
    app, _queries = _graphql_app([])
    assert _check(app) is False


def test_http_error_counts_as_not_whitelisted():
    app, _queries = _graphql_app([{"userId": "42"}], status=500)
    assert _check(app) is False


def test_missing_endpoint_or_address():
    assert asyncio.run(check_whitelist_status("", BUYER)) is False
    assert asyncio.run(check_whitelist_status("http://127.0.0.1:9/graphql", "")) is False
