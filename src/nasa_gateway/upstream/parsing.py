from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from nasa_gateway.core.errors import UpstreamError
from nasa_gateway.core.models import Apod, Item, ManifestPayload, ManifestRecord, NearEarthObject

logger = logging.getLogger(__name__)

SPACE_IMAGE_KEYWORDS = (
    "nebula",
    "galaxy",
    "cluster",
    "moon",
    "sun",
    "planet",
    "star",
    "comet",
    "asteroid",
    "aurora",
)


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_manifest(parent_identity: str, payload: Any) -> ManifestPayload:
    if not isinstance(payload, dict) or not isinstance(payload.get("photo_manifest"), dict):
        raise UpstreamError(200, "Manifest response is missing 'photo_manifest'.")
    manifest = payload["photo_manifest"]
    records: list[ManifestRecord] = []
    for entry in manifest.get("photos") or []:
        try:
            records.append(
                ManifestRecord(
                    period_key=int(entry["sol"]),
                    item_count=int(entry.get("total_photos") or 0),
                    categories=frozenset(entry.get("cameras") or ()),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed manifest entry. rover=%s entry=%s error=%s", parent_identity, entry, e)
    return ManifestPayload(parent_identity=parent_identity, records=records)


def parse_photos(parent_identity: str, payload: Any) -> list[Item]:
    if not isinstance(payload, dict):
        raise UpstreamError(200, "Photos response is not a JSON object.")
    items: list[Item] = []
    for photo in payload.get("photos") or []:
        try:
            camera = photo.get("camera") or {}
            items.append(
                Item(
                    id=int(photo["id"]),
                    media_url=photo["img_src"],
                    captured_at=photo.get("earth_date", ""),
                    category_tag=camera.get("name", ""),
                    parent_identity=parent_identity,
                    period_key=int(photo["sol"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed photo entry. rover=%s error=%s", parent_identity, e)
    return items


def parse_neo_feed(payload: Any) -> list[NearEarthObject]:
    if not isinstance(payload, dict):
        raise UpstreamError(200, "NEO feed response is not a JSON object.")
    neos: list[NearEarthObject] = []
    by_date = payload.get("near_earth_objects") or {}
    for _, day_neos in sorted(by_date.items()):
        for neo in day_neos or []:
            try:
                parsed = _parse_neo(neo)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed NEO entry. error=%s", e)
                continue
            if parsed is not None:
                neos.append(parsed)
    return neos


def _parse_neo(neo: dict[str, Any]) -> Optional[NearEarthObject]:
    approaches = neo.get("close_approach_data") or []
    if not approaches:
        return None
    approach = approaches[0]
    diameter = (neo.get("estimated_diameter") or {}).get("kilometers") or {}
    velocity = approach.get("relative_velocity") or {}
    return NearEarthObject(
        id=str(neo["id"]),
        name=neo.get("name", ""),
        absolute_magnitude=_as_float(neo.get("absolute_magnitude_h")),
        diameter_min_km=_as_float(diameter.get("estimated_diameter_min")) or 0.0,
        diameter_max_km=_as_float(diameter.get("estimated_diameter_max")) or 0.0,
        is_potentially_hazardous=bool(neo.get("is_potentially_hazardous_asteroid")),
        close_approach_date=approach.get("close_approach_date", ""),
        miss_distance_km=_as_float((approach.get("miss_distance") or {}).get("kilometers")) or 0.0,
        relative_velocity_kmh=_as_float(velocity.get("kilometers_per_hour")) or 0.0,
        relative_velocity_kps=_as_float(velocity.get("kilometers_per_second")),
    )


def filter_space_images(apods: Iterable[Apod]) -> list[Apod]:
    """Keep image entries with an HD url whose title or explanation mentions a space keyword."""
    selected = []
    for apod in apods:
        if apod.media_type != "image" or not apod.hdurl:
            continue
        title = apod.title.lower()
        explanation = apod.explanation.lower()
        if any(keyword in title or keyword in explanation for keyword in SPACE_IMAGE_KEYWORDS):
            selected.append(apod)
    return selected
