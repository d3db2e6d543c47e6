"""
Token registry sources — where TokenRegistryCache gets fresh metadata from.

CommunityApiClient:
  GET {COMMUNITY_API_URI}/tokens
  Header: X-AUTH-REALT-TOKEN: <COMMUNITY_API_KEY>
  Returns a JSON array of token objects. The API has been seen answering 301
  while still sending the array; that body is accepted too.

CacheServiceClient:
  GET {TOKEN_CACHE_SERVICE_URL}/token
  Returns the persistence record {lastUpdated, tokens{...}} served by
  yamview.server.app, so several processes can share one warm cache.

Both raise UpstreamRegistryError on anything unusable and return a dict of
TokenMetadata keyed by lowercase address.
"""

import asyncio
from typing import Dict, Optional

import aiohttp

from yamview.errors import UpstreamRegistryError
from yamview.tokens.models import TokenMetadata, entries_from_tokens

# HTTP timeout for registry calls (the list endpoint is several MB)
HTTP_TIMEOUT_SEC = 30
AUTH_HEADER = "X-AUTH-REALT-TOKEN"


class _HttpSource:
    """Shared aiohttp session handling for registry sources."""

    def __init__(self):
        self._session: Optional[aiohttp.ClientSession] = None
        self._fetch_count: int = 0
        self._fetch_errors: int = 0

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SEC)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, url: str, headers: Optional[dict] = None, accept_redirect: bool = False):
        await self._ensure_session()
        try:
            async with self._session.get(url, headers=headers, allow_redirects=True) as resp:
                print(f"[REGISTRY] {url} → HTTP {resp.status}")
                ok = resp.status == 200 or (accept_redirect and resp.status == 301)
                if not ok:
                    body = await resp.text()
                    raise UpstreamRegistryError(f"HTTP {resp.status} from {url}: {body[:100]}")
                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise UpstreamRegistryError(f"Invalid JSON from {url}: {e}") from e
        except asyncio.TimeoutError as e:
            self._fetch_errors += 1
            raise UpstreamRegistryError(f"Timeout fetching {url} ({HTTP_TIMEOUT_SEC}s)") from e
        except aiohttp.ClientError as e:
            self._fetch_errors += 1
            raise UpstreamRegistryError(f"Error fetching {url}: {e}") from e
        except UpstreamRegistryError:
            self._fetch_errors += 1
            raise
        self._fetch_count += 1
        return data

    def metrics(self) -> dict:
        return {
            "fetch_count": self._fetch_count,
            "fetch_errors": self._fetch_errors,
        }


class CommunityApiClient(_HttpSource):
    """Async client for the RealToken community API."""

    def __init__(self, base_url: str, api_key: str):
        super().__init__()
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key or ""

    async def fetch_tokens(self) -> Dict[str, TokenMetadata]:
        if not self.base_url:
            raise UpstreamRegistryError("Missing COMMUNITY API base URL")
        if not self.api_key:
            raise UpstreamRegistryError("Missing COMMUNITY_API_KEY")

        url = f"{self.base_url}/tokens"
        print(f"[REGISTRY] Fetching tokens from {url} (key {self.api_key[:10]}...)")
        data = await self._get_json(
            url,
            headers={AUTH_HEADER: self.api_key, "Content-Type": "application/json"},
            accept_redirect=True,
        )
        if not isinstance(data, list):
            raise UpstreamRegistryError(f"Expected a token array, got {type(data).__name__}")

        entries = entries_from_tokens(data)
        print(f"[REGISTRY] Processed {len(entries)}/{len(data)} tokens")
        return entries


class CacheServiceClient(_HttpSource):
    """Reads another process's cache through its GET /token endpoint."""

    def __init__(self, service_url: str, force_refresh: bool = False):
        super().__init__()
        self.service_url = (service_url or "").rstrip("/")
        self.force_refresh = force_refresh

    async def fetch_tokens(self) -> Dict[str, TokenMetadata]:
        if not self.service_url:
            raise UpstreamRegistryError("Missing TOKEN_CACHE_SERVICE_URL")

        url = f"{self.service_url}/token"
        if self.force_refresh:
            url += "?refresh=true"
        data = await self._get_json(url)
        if not isinstance(data, dict) or not isinstance(data.get("tokens"), dict):
            raise UpstreamRegistryError("Cache service returned no token map")
        tokens = data["tokens"]
        if not tokens and data.get("error"):
            raise UpstreamRegistryError(f"Cache service has no data: {data['error']}")
        return entries_from_tokens(tokens.values())
