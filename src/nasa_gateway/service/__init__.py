"""Query façade: the read interface consumed by the REST surface and the CLI."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from nasa_gateway.cache.freshness import Clock, FreshnessCache, MemoryFreshnessCache
from nasa_gateway.cache.sqlite_cache import SqliteFreshnessCache
from nasa_gateway.config.models import AppConfig, CacheSettings
from nasa_gateway.core.utils import utc_now
from nasa_gateway.service.apod import ApodService
from nasa_gateway.service.neo import IssService, NeoService
from nasa_gateway.service.rovers import MarsRoverService
from nasa_gateway.store.sqlite_store import SqliteStore
from nasa_gateway.sync.rover_sync import RoverSynchronizer
from nasa_gateway.upstream.client import NasaClient


@dataclass(slots=True)
class Gateway:
    client: NasaClient
    store: SqliteStore
    synchronizer: RoverSynchronizer
    rovers: MarsRoverService
    apod: ApodService
    neo: NeoService
    iss: IssService

    async def close(self) -> None:
        await self.synchronizer.stop()
        await self.client.close()
        self.store.close()


def build_cache(config: CacheSettings, store: SqliteStore, *, clock: Clock = utc_now) -> FreshnessCache:
    if config.backend == "memory":
        return MemoryFreshnessCache(clock=clock)
    return SqliteFreshnessCache(store, clock=clock)


def build_gateway(
    config: AppConfig,
    *,
    client: Optional[NasaClient] = None,
    store: Optional[SqliteStore] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Clock = utc_now,
) -> Gateway:
    client = client or NasaClient(config.nasa, sleep=sleep)
    store = store or SqliteStore(config.store.db_path)
    synchronizer = RoverSynchronizer(client=client, store=store, config=config.sync, sleep=sleep, clock=clock)
    return Gateway(
        client=client,
        store=store,
        synchronizer=synchronizer,
        rovers=MarsRoverService(
            store=store,
            client=client,
            synchronizer=synchronizer,
            config=config.sync,
            sleep=sleep,
        ),
        apod=ApodService(
            client=client,
            store=store,
            cache=build_cache(config.cache, store, clock=clock),
            config=config.cache,
            clock=clock,
        ),
        neo=NeoService(client=client, store=store, config=config.cache, clock=clock),
        iss=IssService(client=client),
    )


__all__ = [
    "ApodService",
    "Gateway",
    "IssService",
    "MarsRoverService",
    "NeoService",
    "build_cache",
    "build_gateway",
]
