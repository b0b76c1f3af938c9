from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from nasa_gateway.core.models import KNOWN_ROVERS


class FileRotationSettings(BaseModel):
    """
    Date-based rotation settings (daily).

    This maps cleanly to Python's standard library TimedRotatingFileHandler behavior.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_count: int = 7


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = ""
    rotation: FileRotationSettings = FileRotationSettings()


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "INFO"
    # Per-logger levels, e.g. {"nasa_gateway.upstream": "DEBUG"}. aiohttp logs every request at INFO.
    levels: dict[str, str] = Field(default_factory=lambda: {"aiohttp.access": "WARNING"})
    file: FileLoggingSettings = FileLoggingSettings()


class NasaApiSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    api_key: str = ""
    base_url: str = "https://api.nasa.gov"
    iss_url: str = "http://api.open-notify.org/iss-now.json"
    request_timeout_seconds: float = 30.0

    # 429 handling
    max_attempts: int = Field(default=3, ge=1)
    default_retry_after_seconds: float = 60.0


class CacheSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    ttl_hours: float = Field(default=6.0, gt=0)
    apod_window_days: int = 30
    # "sqlite" keeps memoized payloads across restarts in the store; "memory" keeps them per process.
    backend: Literal["memory", "sqlite"] = "sqlite"


class StoreSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    db_path: str = "data/nasa_cache.db"


class SyncSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    rovers: Sequence[str] = KNOWN_ROVERS
    startup_delay_seconds: float = 10.0
    inter_entity_delay_seconds: float = 5.0
    item_batch_delay_seconds: float = 0.1
    populate_limit: int = 100


class ServerSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = "0.0.0.0"
    port: int = 4000
    startup_sync: bool = True


class AppConfig(BaseModel):
    """Effective runtime configuration after applying all precedence rules."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    logging: LoggingSettings = LoggingSettings()
    nasa: NasaApiSettings = NasaApiSettings()
    cache: CacheSettings = CacheSettings()
    store: StoreSettings = StoreSettings()
    sync: SyncSettings = SyncSettings()
    server: ServerSettings = ServerSettings()


@dataclass(frozen=True, slots=True)
class ConfigLoadRequest:
    """
    Optional inputs for a configuration loader.

    Implementations may use these to control where configuration is read from.
    """

    yaml_path: str = "data/config/config.yaml"
    env_prefix: str = "APP__"
    dotenv_path: Optional[str] = "data/.env"
