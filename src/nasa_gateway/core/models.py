from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, FrozenSet, Optional

from nasa_gateway.core.errors import PartialReconciliationFailure, ValidationError

KNOWN_ROVERS = ("curiosity", "perseverance", "opportunity", "spirit")


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    payload: Any
    cached_at: datetime


@dataclass(frozen=True, slots=True)
class ManifestRecord:
    period_key: int
    item_count: int
    categories: FrozenSet[str] = frozenset()
    last_updated: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.item_count < 0:
            raise ValidationError(f"item_count must be >= 0, got {self.item_count} for period {self.period_key}")


@dataclass(frozen=True, slots=True)
class ManifestPayload:
    parent_identity: str
    records: list[ManifestRecord]


@dataclass(slots=True)
class ParentEntity:
    identity: str
    known_periods: list[int] = field(default_factory=list)
    known_categories: set[str] = field(default_factory=set)
    last_checked_date: Optional[str] = None
    last_updated: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Item:
    id: int
    media_url: str
    captured_at: str
    category_tag: str
    parent_identity: str
    period_key: int

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "img_src": self.media_url,
            "earth_date": self.captured_at,
            "sol": self.period_key,
            "camera": self.category_tag,
            "rover": self.parent_identity,
        }


@dataclass(slots=True)
class PeriodResult:
    period_key: int
    item_count: int
    category: Optional[str] = None
    items: list[Item] = field(default_factory=list)

    def to_public(self) -> dict[str, Any]:
        return {
            "sol": self.period_key,
            "photoCount": self.item_count,
            "camera": self.category,
            "photos": [item.to_public() for item in self.items],
        }


@dataclass(slots=True)
class ReconcilePlan:
    parent_identity: str
    to_insert_or_update: list[ManifestRecord]
    to_delete: list[int]
    merged: list[ManifestRecord]

    @property
    def is_empty(self) -> bool:
        return not self.to_insert_or_update and not self.to_delete


@dataclass(slots=True)
class ReconcileOutcome:
    parent_identity: str
    stored: list[int] = field(default_factory=list)
    deleted: list[int] = field(default_factory=list)
    failures: list[PartialReconciliationFailure] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Apod:
    date: str
    title: str
    url: str
    explanation: str
    media_type: str
    hdurl: Optional[str] = None
    service_version: Optional[str] = None
    copyright: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> Apod:
        return cls(
            date=raw["date"],
            title=raw.get("title", ""),
            url=raw.get("url", ""),
            explanation=raw.get("explanation", ""),
            media_type=raw.get("media_type", ""),
            hdurl=raw.get("hdurl") or None,
            service_version=raw.get("service_version") or None,
            copyright=raw.get("copyright") or None,
        )

    def to_public(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "title": self.title,
            "url": self.url,
            "hdurl": self.hdurl,
            "explanation": self.explanation,
            "media_type": self.media_type,
            "service_version": self.service_version,
            "copyright": self.copyright,
        }


@dataclass(frozen=True, slots=True)
class NearEarthObject:
    id: str
    name: str
    diameter_min_km: float
    diameter_max_km: float
    is_potentially_hazardous: bool
    close_approach_date: str
    miss_distance_km: float
    relative_velocity_kmh: float
    relative_velocity_kps: Optional[float] = None
    absolute_magnitude: Optional[float] = None

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "absoluteMagnitude": self.absolute_magnitude,
            "estimatedDiameter": {"min": self.diameter_min_km, "max": self.diameter_max_km},
            "isPotentiallyHazardous": self.is_potentially_hazardous,
            "closeApproachDate": self.close_approach_date,
            "missDistance": {"kilometers": self.miss_distance_km},
            "relativeVelocity": {
                "kmPerHour": self.relative_velocity_kmh,
                "kmPerSecond": self.relative_velocity_kps,
            },
        }


@dataclass(frozen=True, slots=True)
class IssPosition:
    latitude: float
    longitude: float
    timestamp: int

    def to_public(self) -> dict[str, Any]:
        return {"latitude": self.latitude, "longitude": self.longitude, "timestamp": self.timestamp}
