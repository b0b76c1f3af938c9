from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Sequence

from nasa_gateway.cache.freshness import Clock
from nasa_gateway.config.models import SyncSettings
from nasa_gateway.core.errors import ConfigurationError, UpstreamAuthError, ValidationError
from nasa_gateway.core.models import ManifestRecord, ReconcileOutcome
from nasa_gateway.core.utils import normalize_rover, today_string, utc_now
from nasa_gateway.store.sqlite_store import SqliteStore
from nasa_gateway.sync.reconciler import apply_plan, merge_manifest, reconcile
from nasa_gateway.upstream.client import NasaClient

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class RoverSynchronizer:
    """
    Keeps the stored rover manifests in step with the upstream manifest.

    Rover metadata is refreshed at most once per calendar day (UTC): the stored
    ``last_checked`` date string is compared literally with today's.
    """

    def __init__(
        self,
        *,
        client: NasaClient,
        store: SqliteStore,
        config: SyncSettings,
        sleep: SleepFn = asyncio.sleep,
        clock: Clock = utc_now,
    ) -> None:
        self._client = client
        self._store = store
        self._config = config
        self._sleep = sleep
        self._clock = clock
        self._startup_task: Optional[asyncio.Task] = None

    def is_checked_today(self, parent_identity: str) -> bool:
        parent = self._store.get_parent(normalize_rover(parent_identity))
        if parent is None:
            return False
        return parent.last_checked_date == today_string(self._clock())

    async def update_rover(self, parent_identity: str, *, force: bool = False) -> Optional[ReconcileOutcome]:
        """Fetch the manifest, reconcile it against the stored sols and persist the result.

        Returns None when the rover was already checked today or the update failed.
        Configuration and authentication errors propagate.
        """
        rover = normalize_rover(parent_identity)
        if not force and self.is_checked_today(rover):
            logger.info("[%s] Already checked today, skipping update.", rover)
            return None

        try:
            manifest = await self._client.fetch_manifest(rover)
        except (ConfigurationError, UpstreamAuthError, ValidationError):
            raise
        except Exception:
            logger.exception("Error updating rover data. rover=%s", rover)
            return None

        now = self._clock()
        plan = reconcile(rover, manifest.records, self._store.list_manifest(rover))
        logger.info("[%s] Found %d new sols with photos to store", rover, len(plan.to_insert_or_update))
        outcome = apply_plan(self._store, plan, now)

        all_sols = [record.period_key for record in plan.merged]
        all_cameras = set()
        for record in plan.merged:
            all_cameras.update(record.categories)
        self._store.save_parent_metadata(rover, all_sols, all_cameras, now)
        self._store.set_last_checked(rover, today_string(now))

        logger.info(
            "[%s] Updated metadata: %d sols, %d cameras, %d failures",
            rover,
            len(all_sols),
            len(all_cameras),
            len(outcome.failures),
        )
        return outcome

    async def sync_all(self, rovers: Optional[Sequence[str]] = None) -> Dict[str, Optional[ReconcileOutcome]]:
        """Update every rover in turn, pausing between rovers. One failure never stops the sweep."""
        targets = list(rovers if rovers is not None else self._config.rovers)
        results: Dict[str, Optional[ReconcileOutcome]] = {}
        logger.info("Starting background updates for all rovers. rovers=%s", ",".join(targets))
        for index, rover in enumerate(targets):
            try:
                results[rover] = await self.update_rover(rover)
            except Exception:
                logger.exception("Background update failed. rover=%s", rover)
                results[rover] = None
            if index < len(targets) - 1:
                await self._sleep(self._config.inter_entity_delay_seconds)
        logger.info("Background updates completed.")
        return results

    def schedule_startup_sync(self) -> asyncio.Task:
        """Run one full sweep after the configured startup delay. Not re-triggered."""
        if self._startup_task and not self._startup_task.done():
            return self._startup_task
        self._startup_task = asyncio.create_task(self._delayed_sync())
        self._startup_task.add_done_callback(_log_sync_task_result)
        return self._startup_task

    async def _delayed_sync(self) -> None:
        logger.info("Triggering background data updates in %s seconds.", self._config.startup_delay_seconds)
        await self._sleep(self._config.startup_delay_seconds)
        await self.sync_all()

    async def stop(self) -> None:
        if not self._startup_task:
            return
        if not self._startup_task.done():
            self._startup_task.cancel()
            try:
                await self._startup_task
            except asyncio.CancelledError:
                logger.info("Background rover sync cancelled during shutdown.")
        self._startup_task = None

    async def populate_rover(self, parent_identity: str, limit: Optional[int] = None) -> int:
        """
        Seed the store with per-sol photo counts by querying each sol individually.

        Only the first ``limit`` sols are processed to stay under the upstream rate limit.
        Returns the number of sols stored.
        """
        rover = normalize_rover(parent_identity)
        limit = self._config.populate_limit if limit is None else limit
        logger.info("Starting database population. rover=%s limit=%s", rover, limit)

        manifest = await self._client.fetch_manifest(rover)
        merged = merge_manifest(manifest.records)
        cameras = set()
        for record in merged:
            cameras.update(record.categories)
        now = self._clock()
        self._store.save_parent_metadata(rover, [record.period_key for record in merged], cameras, now)

        stored = 0
        for index, record in enumerate(merged[:limit]):
            if index:
                await self._sleep(self._config.item_batch_delay_seconds)
            try:
                items = await self._client.fetch_items(rover, record.period_key)
            except (ConfigurationError, UpstreamAuthError):
                raise
            except Exception:
                logger.exception("Error processing sol. rover=%s sol=%s", rover, record.period_key)
                continue
            if not items:
                continue
            try:
                self._store.upsert_manifest_record(
                    rover,
                    ManifestRecord(
                        period_key=record.period_key,
                        item_count=len(items),
                        categories=frozenset(item.category_tag for item in items),
                    ),
                    self._clock(),
                )
                stored += 1
            except Exception:
                logger.exception("Error storing sol. rover=%s sol=%s", rover, record.period_key)

        logger.info("Database population completed. rover=%s stored=%d", rover, stored)
        return stored


def _log_sync_task_result(task: asyncio.Task) -> None:
    try:
        task.result()
    except asyncio.CancelledError:
        return
    except Exception:
        logger.exception("Background rover sync failed.")
