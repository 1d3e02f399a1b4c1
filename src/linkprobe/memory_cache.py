"""In-process validation cache.

A plain dict keyed by URL, owned by whoever constructs it (normally the
server lifespan) and passed by reference. There is no module-level cache.
Results are copied in and out, so entries stay immutable once written and
single dict operations are the only synchronisation needed on the event loop.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from linkprobe.models.cache import CacheEntry, CacheStats

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import timedelta

    from linkprobe.models.validation import ValidationResult

log = structlog.get_logger()


class InMemoryValidationCache:
    """Volatile url → result map implementing ValidationCacheProtocol."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock
        self._last_sweep_at: float | None = None

    async def get(self, url: str) -> ValidationResult | None:
        """Return a copy of a live entry's result.

        Expired entries are purged and reported as a miss.
        """
        entry = self._entries.get(url)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            # Only drop the slot if nobody replaced it since we read it.
            if self._entries.get(url) is entry:
                self._entries.pop(url, None)
            log.debug("cache_entry_expired", url=url)
            return None
        return entry.result.model_copy()

    async def put(self, url: str, result: ValidationResult, ttl: timedelta) -> None:
        self._entries[url] = CacheEntry(
            result=result.model_copy(),
            recorded_at=self._clock(),
            ttl_seconds=ttl.total_seconds(),
        )

    async def sweep(self, max_age_minutes: int | None = None) -> int:
        """Remove expired entries and return how many were dropped.

        With ``max_age_minutes`` every entry older than that age is dropped,
        regardless of the TTL it was written with.
        """
        now = self._clock()
        max_age_seconds = max_age_minutes * 60 if max_age_minutes is not None else None
        expired = [
            url
            for url, entry in list(self._entries.items())
            if entry.is_expired(now, max_age_seconds)
        ]
        for url in expired:
            self._entries.pop(url, None)
        self._last_sweep_at = now
        log.debug("cache_sweep_complete", removed=len(expired), backend="memory")
        return len(expired)

    async def sweep_if_due(self, interval_hours: int) -> None:
        if (
            self._last_sweep_at is not None
            and self._clock() - self._last_sweep_at < interval_hours * 3600
        ):
            log.debug("cache_sweep_skipped", reason="not_due")
            return
        await self.sweep()

    async def stats(self) -> CacheStats:
        now = self._clock()
        entries = list(self._entries.values())
        return CacheStats(
            size=len(entries),
            expired_count=sum(1 for entry in entries if entry.is_expired(now)),
        )

    async def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        log.info("cache_cleared", removed=removed, backend="memory")
        return removed
