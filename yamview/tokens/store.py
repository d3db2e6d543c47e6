"""
Durable store for the registry snapshot — one JSON record on disk.

File I/O runs in a worker thread (asyncio.to_thread) so the event loop never
blocks on disk. Writes go to a temp file first and are swapped in with
os.replace, so a crash mid-write leaves the previous record intact.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Optional

from yamview.tokens.models import CacheSnapshot


class SnapshotStore:
    """Reads and writes the persisted {lastUpdated, tokens} record."""

    def __init__(self, path: Path):
        self.path = Path(path)
        # Metrics
        self._reads = 0
        self._writes = 0
        self._corrupt_reads = 0

    async def load(self) -> Optional[CacheSnapshot]:
        """Load the snapshot. Missing, empty or corrupt files are a cache miss."""
        return await asyncio.to_thread(self._load_sync)

    async def save(self, snapshot: CacheSnapshot):
        await asyncio.to_thread(self._save_sync, snapshot)

    def _load_sync(self) -> Optional[CacheSnapshot]:
        self._reads += 1
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            print(f"[CACHE] ⚠️  Could not read {self.path}: {e}")
            return None
        if not content.strip():
            return None
        try:
            record = json.loads(content)
        except ValueError as e:
            self._corrupt_reads += 1
            print(f"[CACHE] ⚠️  Corrupt cache file {self.path}: {e} — treating as empty")
            return None
        snapshot = CacheSnapshot.from_record(record)
        if snapshot is None:
            self._corrupt_reads += 1
            print(f"[CACHE] ⚠️  Unexpected cache record shape in {self.path} — treating as empty")
        return snapshot

    def _save_sync(self, snapshot: CacheSnapshot):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(snapshot.to_record(), indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
        self._writes += 1

    def metrics(self) -> dict:
        return {
            "path": str(self.path),
            "reads": self._reads,
            "writes": self._writes,
            "corrupt_reads": self._corrupt_reads,
        }
