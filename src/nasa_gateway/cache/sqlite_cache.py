from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from nasa_gateway.cache.freshness import Clock, FreshnessCache
from nasa_gateway.core.models import CacheEntry
from nasa_gateway.core.utils import utc_now
from nasa_gateway.store.sqlite_store import SqliteStore


class SqliteFreshnessCache(FreshnessCache):
    """Freshness cache persisted in the store's ``cache_entries`` table. Payloads must be JSON-serializable."""

    def __init__(self, store: SqliteStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._store.get_cache_entry(key)

    def put(self, key: str, payload: Any) -> None:
        self._store.put_cache_entry(key, payload, self._clock())
