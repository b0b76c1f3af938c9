from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from nasa_gateway.core.models import CacheEntry
from nasa_gateway.core.utils import utc_now

Clock = Callable[[], datetime]


class FreshnessCache:
    """
    Key/value store remembering when each payload was written.

    There is no eviction and no locking: entries live until overwritten and two
    concurrent writers simply race (last write wins).
    """

    def get(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    def put(self, key: str, payload: Any) -> None:
        raise NotImplementedError

    def now(self) -> datetime:
        raise NotImplementedError

    def is_fresh(self, key: str, ttl: timedelta) -> bool:
        entry = self.get(key)
        if entry is None:
            return False
        return self.now() - entry.cached_at < ttl

    def get_fresh(self, key: str, ttl: timedelta) -> Optional[CacheEntry]:
        entry = self.get(key)
        if entry is None or self.now() - entry.cached_at >= ttl:
            return None
        return entry


class MemoryFreshnessCache(FreshnessCache):
    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def now(self) -> datetime:
        return self._clock()

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def put(self, key: str, payload: Any) -> None:
        self._entries[key] = CacheEntry(key=key, payload=payload, cached_at=self._clock())

    def __len__(self) -> int:
        return len(self._entries)
