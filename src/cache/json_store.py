# src/cache/json_store.py — v1
"""JSON file-based result cache (CACHE_ENABLED=true).

One JSON file per cache key under CACHE_DIR. An entry is reused only while
its fingerprint matches the current inputs and it is younger than the
TTL; anything else (missing, stale, unreadable) is a miss.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class CacheEntry(BaseModel):
    """A cached result and the fingerprint it was produced from."""

    key: str
    fingerprint: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] = Field(default_factory=dict)


class JsonCacheStore:
    """File-based cache store using JSON files.

    Args:
        cache_root: Directory holding the entries.
        ttl_s: Maximum entry age in seconds.
    """

    def __init__(self, cache_root: Path, ttl_s: float = 24 * 60 * 60) -> None:
        self._root = Path(cache_root).expanduser()
        self._ttl_s = ttl_s

    @property
    def root(self) -> Path:
        return self._root

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve the entry stored under key, expired entries excluded."""
        path = self._entry_path(key)
        if not path.exists():
            return None
        try:
            entry = CacheEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Failed to read cache entry %s: %s", key, e)
            return None
        age_s = (datetime.now(timezone.utc) - entry.created_at).total_seconds()
        if age_s > self._ttl_s:
            logger.debug("Cache entry %s expired (%.0fs old)", key, age_s)
            return None
        return entry

    async def lookup(self, key: str, fingerprint: str) -> dict[str, Any] | None:
        """Cached data for key when it was produced from `fingerprint`."""
        entry = await self.get(key)
        if entry is None or entry.fingerprint != fingerprint:
            return None
        logger.info("Cache hit for %s", key)
        return entry.data

    async def put(self, key: str, fingerprint: str, data: dict[str, Any]) -> None:
        """Store data under key. Write failures are logged, not raised."""
        path = self._entry_path(key)
        entry = CacheEntry(key=key, fingerprint=fingerprint, data=data)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(entry.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to write cache entry %s: %s", key, e)

    async def delete(self, key: str) -> None:
        path = self._entry_path(key)
        if path.exists():
            path.unlink()

    async def clear(self) -> int:
        """Remove every entry; returns how many were deleted."""
        if not self._root.is_dir():
            return 0
        removed = 0
        for path in self._root.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning("Could not remove cache entry %s: %s", path, e)
        return removed

    def _entry_path(self, key: str) -> Path:
        return self._root / f"{_UNSAFE.sub('_', key)}.json"
