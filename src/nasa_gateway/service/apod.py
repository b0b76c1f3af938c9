from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from nasa_gateway.cache.freshness import Clock, FreshnessCache
from nasa_gateway.config.models import CacheSettings
from nasa_gateway.core.errors import ValidationError
from nasa_gateway.core.models import Apod
from nasa_gateway.core.utils import date_range, parse_iso_date, today_string, utc_now
from nasa_gateway.store.sqlite_store import SqliteStore
from nasa_gateway.upstream.client import NasaClient
from nasa_gateway.upstream.parsing import filter_space_images

logger = logging.getLogger(__name__)

RECENT_IMAGES_KEY = "apod:recent-space-images"


class ApodService:
    def __init__(
        self,
        *,
        client: NasaClient,
        store: SqliteStore,
        cache: FreshnessCache,
        config: CacheSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._client = client
        self._store = store
        self._cache = cache
        self._config = config
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self._config.ttl_hours)

    async def recent_space_images(self) -> list[Apod]:
        """Space-themed images from the last month, memoized for the cache TTL."""
        entry = self._cache.get_fresh(RECENT_IMAGES_KEY, self.ttl)
        if entry is not None:
            logger.debug("apod.recent_cache_hit")
            return [Apod.from_raw(raw) for raw in entry.payload]

        today = self._clock().date()
        start = (today - timedelta(days=self._config.apod_window_days)).isoformat()
        raw = await self._client.fetch_apods(start_date=start, end_date=today.isoformat())
        images = sorted(
            filter_space_images(Apod.from_raw(item) for item in raw if item.get("date")),
            key=lambda apod: apod.date,
        )
        self._cache.put(RECENT_IMAGES_KEY, [apod.to_public() for apod in images])
        logger.info("apod.recent_refreshed fetched=%d kept=%d", len(raw), len(images))
        return images

    async def get_apods(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        count: Optional[int] = None,
    ) -> list[Apod]:
        if not start_date and not end_date and not count:
            today = today_string(self._clock())
            start_date, end_date = today, today

        if start_date and end_date and not count:
            if parse_iso_date(start_date) > parse_iso_date(end_date):
                raise ValidationError("Start date must be before or equal to end date")
            dates = date_range(start_date, end_date)
            cached = self._store.get_apods(start_date, end_date)
            cached_dates = {apod.date for apod in cached}
            now = self._clock()
            if cached and all(day in cached_dates for day in dates):
                if all(self._store.is_apod_fresh(day, self.ttl, now) for day in dates):
                    logger.info("Serving APOD data from cache. start=%s end=%s", start_date, end_date)
                    return cached

        logger.info("Fetching fresh APOD data. start=%s end=%s count=%s", start_date, end_date, count)
        raw = await self._client.fetch_apods(start_date, end_date, count)
        apods = [Apod.from_raw(item) for item in raw if item.get("media_type") == "image" and item.get("date")]
        apods.sort(key=lambda apod: apod.date)
        now = self._clock()
        for apod in apods:
            self._store.upsert_apod(apod, now)
        return apods

    async def get_apod(self, day: str) -> Optional[Apod]:
        day = parse_iso_date(day).isoformat()
        cached = self._store.get_apod(day)
        if cached is not None and self._store.is_apod_fresh(day, self.ttl, self._clock()):
            logger.info("Serving APOD from cache. date=%s", day)
            return cached

        raw = await self._client.fetch_apod(day)
        if raw is None:
            return None
        apod = Apod.from_raw(raw)
        self._store.upsert_apod(apod, self._clock())
        return apod
