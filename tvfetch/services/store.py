"""Key/value stores backing the cache-aside layer."""
from __future__ import annotations

import json
import logging
from typing import Optional, Protocol

from pydantic_core import to_jsonable_python

from tvfetch.database import db_connect, init_db
from tvfetch.models.transport import CacheEntry

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[CacheEntry]:
        ...

    def put(self, key: str, entry: CacheEntry) -> None:
        ...

    def delete_by_prefix(self, prefix: str) -> int:
        ...


class MemoryStore:
    """Process-local store; entries are replaced wholesale on every put."""

    def __init__(self):
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete_by_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def keys(self) -> list[str]:
        return list(self._entries)


class SqliteStore:
    """Persistent store; payloads are kept as JSON and come back as plain data."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_db(db_path)

    def get(self, key: str) -> Optional[CacheEntry]:
        conn = db_connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT payload, timestamp FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        try:
            return CacheEntry(payload=json.loads(row["payload"]), timestamp=row["timestamp"])
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    def put(self, key: str, entry: CacheEntry) -> None:
        data = json.dumps(to_jsonable_python(entry.payload))
        conn = db_connect(self.db_path)
        try:
            conn.execute(
                "INSERT OR REPLACE INTO cache_entries (key, payload, timestamp) VALUES (?,?,?)",
                (key, data, entry.timestamp),
            )
            conn.commit()
        finally:
            conn.close()

    def delete_by_prefix(self, prefix: str) -> int:
        conn = db_connect(self.db_path)
        try:
            cur = conn.execute(
                "DELETE FROM cache_entries WHERE substr(key, 1, ?) = ?", (len(prefix), prefix)
            )
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()
