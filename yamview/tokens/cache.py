"""
TokenRegistryCache — read-through, stale-tolerant, single-flight metadata cache.

Layer 0: in-memory snapshot (immutable, swapped whole on refresh)
Layer 1: durable snapshot (SnapshotStore), loaded once on first use
Layer 2: registry source (community API or another cache service)

Guarantees:
  - At most one refresh in flight per cache instance; concurrent callers
    await the same task and observe the same snapshot
  - A failed refresh never touches the snapshot (stale-serve) but still
    stamps the attempt, so a dead upstream is retried once per TTL window
  - last_updated_ms never decreases
"""

import asyncio
import time
from typing import Callable, Optional

from yamview.errors import UpstreamRegistryError
from yamview.tokens.models import CacheSnapshot, TokenMetadata

CACHE_TTL_SECONDS = 24 * 60 * 60
EMPTY_CACHE_ERROR = "Cache temporarily unavailable"


class TokenRegistryCache:
    """Token metadata cache with its own lifecycle; construct one per process (or per test)."""

    def __init__(
        self,
        source,
        store=None,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

        self._snapshot: Optional[CacheSnapshot] = None
        self._attempted_at: float = 0.0      # seconds; last refresh attempt or load
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Task] = None
        self.last_error: Optional[str] = None

        # Metrics
        self._lookups = 0
        self._hits = 0
        self._refreshes = 0
        self._refresh_errors = 0
        self._coalesced = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> Optional[CacheSnapshot]:
        return self._snapshot

    async def lookup(self, address: str) -> Optional[TokenMetadata]:
        """Metadata for an address, refreshing first if the snapshot is stale."""
        self._lookups += 1
        snapshot = await self.ensure_fresh()
        if snapshot is None or not address:
            return None
        meta = snapshot.get(address)
        if meta is not None:
            self._hits += 1
        return meta

    async def ensure_fresh(self, force_refresh: bool = False) -> Optional[CacheSnapshot]:
        """Make sure the snapshot is within TTL; returns the (possibly stale) snapshot."""
        if not self._loaded:
            await self._load_persisted()

        if self._snapshot is not None and not force_refresh and self._is_fresh():
            return self._snapshot
        if self._snapshot is None and not force_refresh and self._is_fresh():
            # Upstream failed recently with nothing cached; don't hammer it
            return None

        if self._inflight is None:
            self._inflight = asyncio.create_task(self._refresh())
        else:
            self._coalesced += 1
        # shield: a cancelled caller must not cancel the shared refresh
        await asyncio.shield(self._inflight)
        return self._snapshot

    async def force_refresh(self) -> Optional[CacheSnapshot]:
        return await self.ensure_fresh(force_refresh=True)

    def record(self) -> dict:
        """The persistence-record view, or an explicit empty-with-error payload."""
        if self._snapshot is None:
            return {
                "lastUpdated": self._now_ms(),
                "tokens": {},
                "error": EMPTY_CACHE_ERROR,
            }
        return self._snapshot.to_record()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _is_fresh(self) -> bool:
        if not self._attempted_at:
            return False
        return self._clock() - self._attempted_at < self.ttl_seconds

    async def _load_persisted(self):
        async with self._load_lock:
            if self._loaded:
                return
            snapshot = None
            if self.store is not None:
                try:
                    snapshot = await self.store.load()
                except Exception as e:
                    print(f"[CACHE] ⚠️  Loading persisted cache failed: {e}")
            if snapshot is not None and self._snapshot is None:
                self._snapshot = snapshot
                self._attempted_at = snapshot.last_updated_ms / 1000
                age_min = max(0.0, self._clock() - self._attempted_at) / 60
                print(f"[CACHE] Loaded {len(snapshot)} tokens from disk (age {age_min:.0f} min)")
            else:
                print("[CACHE] No persisted cache — will refresh on first use")
            self._loaded = True

    async def _refresh(self):
        """The single refresh routine; the only place the snapshot is mutated."""
        self._refreshes += 1
        print(f"[CACHE] Refreshing token registry (refresh #{self._refreshes})...")
        try:
            entries = await self.source.fetch_tokens()
            previous_ms = self._snapshot.last_updated_ms if self._snapshot else 0
            snapshot = CacheSnapshot(max(self._now_ms(), previous_ms), entries)
            if self.store is not None:
                try:
                    await self.store.save(snapshot)
                except OSError as e:
                    print(f"[CACHE] ⚠️  Persisting cache failed (serving in-memory): {e}")
            self._snapshot = snapshot
            self.last_error = None
            print(f"[CACHE] ✅ Cache refreshed with {len(snapshot)} tokens")
        except UpstreamRegistryError as e:
            self._refresh_errors += 1
            self.last_error = str(e)
            if self._snapshot is not None:
                print(f"[CACHE] ⚠️  Refresh failed, serving stale cache: {e}")
            else:
                print(f"[CACHE] ⚠️  Refresh failed and no cache available: {e}")
        finally:
            self._attempted_at = self._clock()
            self._inflight = None

    def metrics(self) -> dict:
        return {
            "tokens": len(self._snapshot) if self._snapshot else 0,
            "last_updated_ms": self._snapshot.last_updated_ms if self._snapshot else None,
            "lookups": self._lookups,
            "hits": self._hits,
            "refreshes": self._refreshes,
            "refresh_errors": self._refresh_errors,
            "coalesced": self._coalesced,
            "last_error": self.last_error,
        }
