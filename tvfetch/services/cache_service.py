"""Cache service — TTL-keyed read-through cache in front of the fetcher."""
from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from tvfetch.models.transport import CacheEntry
from tvfetch.services.store import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"

T = TypeVar("T")


def make_cache_key(kind: str, server: str, account: str, selector: Optional[str] = None) -> str:
    """Compose ``kind:server:account[:selector]``; distinct selectors never collide."""
    parts = [kind, server, account]
    if selector is not None:
        parts.append(selector)
    return ":".join(parts)


class CacheService:
    """Cache-aside store plus the session-long hold on the raw playlist body.

    Entries older than *ttl* seconds are treated as absent. The playlist hold
    is never TTL-expired; only :meth:`clear_cache` drops it.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        ttl: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else MemoryStore()
        self.ttl = ttl
        self.clock = clock
        self._playlist_hold: Optional[str] = None
        # bumped on every invalidation; in-memory copies held elsewhere compare against it
        self.generation = 0

    # ------------------------------------------------------------------
    # Read-through
    # ------------------------------------------------------------------

    def get_fresh(self, key: str) -> Optional[CacheEntry]:
        entry = self.store.get(CACHE_PREFIX + key)
        if entry is None:
            return None
        if self.clock() - entry.timestamp >= self.ttl:
            logger.debug(f"Cache entry expired: {key}")
            return None
        return entry

    async def get_or_fetch(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        adapter: Optional[TypeAdapter] = None,
    ) -> T:
        entry = self.get_fresh(key)
        if entry is not None:
            try:
                payload = adapter.validate_python(entry.payload) if adapter is not None else entry.payload
                logger.info(f"Using cached data for {key}")
                return payload
            except ValidationError as e:
                logger.warning(f"Cached data for {key} no longer validates, refetching: {e.error_count()} error(s)")

        logger.info(f"Fetching fresh data for {key}")
        fresh = await producer()
        self.put(key, fresh)
        return fresh

    def put(self, key: str, payload: Any) -> None:
        self.store.put(CACHE_PREFIX + key, CacheEntry(payload=payload, timestamp=self.clock()))

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, prefix: str) -> int:
        removed = self.store.delete_by_prefix(CACHE_PREFIX + prefix)
        self.generation += 1
        logger.info(f"Removed {removed} cache entries under '{prefix}'")
        return removed

    def clear_cache(self) -> int:
        removed = self.store.delete_by_prefix(CACHE_PREFIX)
        self.generation += 1
        self._playlist_hold = None
        logger.info(f"Cache cleared ({removed} entries)")
        return removed

    # ------------------------------------------------------------------
    # Playlist hold
    # ------------------------------------------------------------------

    @property
    def held_playlist(self) -> Optional[str]:
        return self._playlist_hold

    def hold_playlist(self, body: str) -> None:
        self._playlist_hold = body
