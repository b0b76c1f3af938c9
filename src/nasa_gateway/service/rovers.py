from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from nasa_gateway.config.models import SyncSettings
from nasa_gateway.core.errors import ConfigurationError, UpstreamAuthError
from nasa_gateway.core.models import Item, ManifestRecord, PeriodResult, ReconcileOutcome
from nasa_gateway.core.utils import normalize_rover, validate_period_key
from nasa_gateway.store.sqlite_store import SqliteStore
from nasa_gateway.sync.rover_sync import RoverSynchronizer
from nasa_gateway.upstream.client import NasaClient

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def _representative_category(record: ManifestRecord, category_filter: Optional[str]) -> Optional[str]:
    if category_filter:
        return category_filter
    return min(record.categories) if record.categories else None


class MarsRoverService:
    """
    Read interface over the stored rover manifests.

    Summary reads are answered from the store alone. Photo listings call the
    upstream client once per requested sol, one at a time.
    """

    def __init__(
        self,
        *,
        store: SqliteStore,
        client: NasaClient,
        synchronizer: RoverSynchronizer,
        config: SyncSettings,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._store = store
        self._client = client
        self._synchronizer = synchronizer
        self._config = config
        self._sleep = sleep

    async def refresh(self, parent_identity: str) -> Optional[ReconcileOutcome]:
        """Bring the stored manifest up to date unless it was already checked today."""
        return await self._synchronizer.update_rover(parent_identity)

    async def get_periods_with_items(self, parent_identity: str) -> list[int]:
        rover = normalize_rover(parent_identity)
        records = self._store.list_manifest(rover)
        sols = [record.period_key for record in records if record.item_count > 0]
        logger.debug("[%s] availableSols stored=%d with_photos=%d", rover, len(records), len(sols))
        return sols

    async def get_categories_for(self, parent_identity: str) -> set[str]:
        rover = normalize_rover(parent_identity)
        parent = self._store.get_parent(rover)
        if parent is not None and parent.known_categories:
            return set(parent.known_categories)
        categories: set[str] = set()
        for record in self._store.list_manifest(rover):
            categories.update(record.categories)
        return categories

    async def get_items_for_periods(
        self,
        parent_identity: str,
        periods: Optional[Sequence[int]] = None,
        category_filter: Optional[str] = None,
        summary_only: bool = False,
    ) -> list[PeriodResult]:
        rover = normalize_rover(parent_identity)
        category_filter = (category_filter or "").strip() or None

        if not periods:
            return self._summarize_stored(rover, category_filter)

        requested = [validate_period_key(period) for period in periods]
        results: list[PeriodResult] = []
        upstream_calls = 0
        for sol in requested:
            record = self._store.get_manifest_record(rover, sol)
            if record is None or record.item_count <= 0:
                continue
            if category_filter and category_filter not in record.categories:
                continue

            if summary_only:
                results.append(
                    PeriodResult(
                        period_key=sol,
                        item_count=record.item_count,
                        category=_representative_category(record, category_filter),
                    )
                )
                continue

            if upstream_calls:
                await self._sleep(self._config.item_batch_delay_seconds)
            upstream_calls += 1
            items = await self._fetch_items_isolated(rover, sol, category_filter)
            results.append(
                PeriodResult(
                    period_key=sol,
                    item_count=len(items),
                    category=_representative_category(record, category_filter),
                    items=items,
                )
            )

        logger.debug("[%s] Returning %d results for %d requested sols", rover, len(results), len(requested))
        return results

    def _summarize_stored(self, rover: str, category_filter: Optional[str]) -> list[PeriodResult]:
        results = []
        for record in self._store.list_manifest(rover):
            if record.item_count <= 0:
                continue
            if category_filter and category_filter not in record.categories:
                continue
            results.append(
                PeriodResult(
                    period_key=record.period_key,
                    item_count=record.item_count,
                    category=_representative_category(record, category_filter),
                )
            )
        return results

    async def _fetch_items_isolated(self, rover: str, sol: int, category_filter: Optional[str]) -> list[Item]:
        try:
            return await self._client.fetch_items(rover, sol, category_filter)
        except (ConfigurationError, UpstreamAuthError):
            raise
        except Exception as e:
            logger.warning("Error fetching photos for sol. rover=%s sol=%s error=%s", rover, sol, e)
            return []
