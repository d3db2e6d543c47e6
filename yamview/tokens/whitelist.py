"""
Whitelist lookup against the YAM GraphQL API.

RealTokens are permissioned: a buyer that has no registered userId on Gnosis
cannot receive them, and the buy reverts. Checking up front lets the CLI warn
before a signature is requested.
"""

import asyncio

import aiohttp

HTTP_TIMEOUT_SEC = 15

_WL_QUERY = """query getWlProperties {
  realTokenGnosis {
    account(id: "%s") {
      userIds {
        userId
        attributeKeys
        trustedIntermediary {
          address
          weight
          __typename
        }
        __typename
      }
      __typename
    }
    __typename
  }
}"""


async def check_whitelist_status(api_url: str, user_address: str) -> bool:
    """True if the account has at least one registered userId. Any failure → False."""
    if not api_url or not user_address:
        return False
    payload = {
        "operationName": "getWlProperties",
        "variables": {},
        "query": _WL_QUERY % user_address.lower(),
    }
    try:
        timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SEC)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(api_url, json=payload) as resp:
                if resp.status != 200:
                    print(f"[WHITELIST] HTTP {resp.status} from {api_url}")
                    return False
                data = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        print(f"[WHITELIST] Error checking whitelist status: {e}")
        return False

    account = (((data or {}).get("data") or {}).get("realTokenGnosis") or {}).get("account") or {}
    user_ids = account.get("userIds") or []
    return len(user_ids) > 0
