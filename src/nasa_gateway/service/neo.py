from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from nasa_gateway.cache.freshness import Clock
from nasa_gateway.config.models import CacheSettings
from nasa_gateway.core.errors import ValidationError
from nasa_gateway.core.models import IssPosition, NearEarthObject
from nasa_gateway.core.utils import parse_iso_date, utc_now
from nasa_gateway.store.sqlite_store import SqliteStore
from nasa_gateway.upstream.client import NEO_MAX_RANGE_DAYS, NasaClient, neo_default_range

logger = logging.getLogger(__name__)


class NeoService:
    def __init__(
        self,
        *,
        client: NasaClient,
        store: SqliteStore,
        config: CacheSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._client = client
        self._store = store
        self._config = config
        self._clock = clock

    async def get_neos(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> list[NearEarthObject]:
        default_start, default_end = neo_default_range(self._clock().date())
        start_date = start_date or default_start
        end_date = end_date or default_end
        start = parse_iso_date(start_date)
        end = parse_iso_date(end_date)
        if start > end:
            raise ValidationError("Start date must be before or equal to end date")
        if (end - start).days > NEO_MAX_RANGE_DAYS:
            raise ValidationError("Date range cannot exceed 7 days for NEO queries")

        ttl = timedelta(hours=self._config.ttl_hours)
        if self._store.has_fresh_neos(start_date, end_date, ttl, self._clock()):
            cached = self._store.get_neos(start_date, end_date)
            if cached:
                logger.info("Serving NEO data from cache. start=%s end=%s", start_date, end_date)
                return cached

        logger.info("Fetching fresh NEO data. start=%s end=%s", start_date, end_date)
        neos = await self._client.fetch_neo_feed(start_date, end_date)
        now = self._clock()
        for neo in neos:
            self._store.upsert_neo(neo, now)
        return neos


class IssService:
    def __init__(self, *, client: NasaClient) -> None:
        self._client = client

    async def current_position(self) -> IssPosition:
        return await self._client.fetch_iss_position()
