"""SQLite persistence for rover manifests and the APOD/NEO caches.

Every write is an idempotent "insert or replace" keyed by a natural key, so two
racing writers converge on the same row instead of needing a lock.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from nasa_gateway.core.models import Apod, CacheEntry, ManifestRecord, NearEarthObject, ParentEntity

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS rovers (
        rover TEXT PRIMARY KEY,
        available_sols TEXT NOT NULL DEFAULT '[]',
        available_cameras TEXT NOT NULL DEFAULT '[]',
        last_updated REAL,
        last_checked TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rover_sols (
        rover TEXT NOT NULL,
        sol INTEGER NOT NULL,
        photo_count INTEGER NOT NULL,
        cameras TEXT NOT NULL DEFAULT '[]',
        last_updated REAL,
        PRIMARY KEY (rover, sol)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS apod_cache (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date TEXT UNIQUE NOT NULL,
        title TEXT NOT NULL,
        url TEXT NOT NULL,
        hdurl TEXT,
        explanation TEXT,
        media_type TEXT NOT NULL,
        service_version TEXT,
        copyright TEXT,
        cached_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS neo_cache (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        neo_id TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        absolute_magnitude REAL,
        estimated_diameter_min REAL,
        estimated_diameter_max REAL,
        is_potentially_hazardous INTEGER,
        close_approach_date TEXT,
        miss_distance_km REAL,
        relative_velocity_kmh REAL,
        relative_velocity_kps REAL,
        cached_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS cache_entries (
        key TEXT PRIMARY KEY,
        payload TEXT NOT NULL,
        cached_at REAL NOT NULL
    )
    """,
)


def _to_epoch(dt: datetime) -> float:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _from_epoch(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


class SqliteStore:
    """
    Persisted store owning rover metadata, per-sol manifest records and the
    APOD/NEO row caches.

    Accepts a filesystem path or ``":memory:"``.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        for statement in _SCHEMA:
            self._conn.execute(statement)
        logger.info("Store initialized. path=%s", self.db_path)

    def close(self) -> None:
        self._conn.close()

    # Rover metadata

    def get_parent(self, rover: str) -> Optional[ParentEntity]:
        row = self._conn.execute("SELECT * FROM rovers WHERE rover = ?", (rover,)).fetchone()
        if row is None:
            return None
        return ParentEntity(
            identity=row["rover"],
            known_periods=list(json.loads(row["available_sols"])),
            known_categories=set(json.loads(row["available_cameras"])),
            last_checked_date=row["last_checked"],
            last_updated=_from_epoch(row["last_updated"]),
        )

    def save_parent_metadata(
        self,
        rover: str,
        periods: Iterable[int],
        categories: Iterable[str],
        now: datetime,
    ) -> None:
        self._conn.execute(
            """
            INSERT INTO rovers (rover, available_sols, available_cameras, last_updated)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(rover) DO UPDATE SET
                available_sols = excluded.available_sols,
                available_cameras = excluded.available_cameras,
                last_updated = excluded.last_updated
            """,
            (rover, json.dumps(sorted(set(periods))), json.dumps(sorted(set(categories))), _to_epoch(now)),
        )

    def set_last_checked(self, rover: str, day: str) -> None:
        self._conn.execute(
            """
            INSERT INTO rovers (rover, last_checked) VALUES (?, ?)
            ON CONFLICT(rover) DO UPDATE SET last_checked = excluded.last_checked
            """,
            (rover, day),
        )

    # Per-sol manifest records

    def list_manifest(self, rover: str) -> list[ManifestRecord]:
        rows = self._conn.execute(
            "SELECT sol, photo_count, cameras, last_updated FROM rover_sols WHERE rover = ? ORDER BY sol ASC",
            (rover,),
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_manifest_record(self, rover: str, sol: int) -> Optional[ManifestRecord]:
        row = self._conn.execute(
            "SELECT sol, photo_count, cameras, last_updated FROM rover_sols WHERE rover = ? AND sol = ?",
            (rover, sol),
        ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def upsert_manifest_record(self, rover: str, record: ManifestRecord, now: datetime) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO rover_sols (rover, sol, photo_count, cameras, last_updated)
            VALUES (?, ?, ?, ?, ?)
            """,
            (rover, record.period_key, record.item_count, json.dumps(sorted(record.categories)), _to_epoch(now)),
        )

    def delete_manifest_record(self, rover: str, sol: int) -> None:
        self._conn.execute("DELETE FROM rover_sols WHERE rover = ? AND sol = ?", (rover, sol))

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ManifestRecord:
        return ManifestRecord(
            period_key=int(row["sol"]),
            item_count=int(row["photo_count"]),
            categories=frozenset(json.loads(row["cameras"])),
            last_updated=_from_epoch(row["last_updated"]),
        )

    # APOD rows

    def upsert_apod(self, apod: Apod, cached_at: datetime) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO apod_cache
            (date, title, url, hdurl, explanation, media_type, service_version, copyright, cached_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                apod.date,
                apod.title,
                apod.url,
                apod.hdurl,
                apod.explanation,
                apod.media_type,
                apod.service_version,
                apod.copyright,
                _to_epoch(cached_at),
            ),
        )

    def get_apods(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> list[Apod]:
        query = "SELECT * FROM apod_cache"
        params: list[str] = []
        if start_date and end_date:
            query += " WHERE date BETWEEN ? AND ?"
            params.extend([start_date, end_date])
        elif start_date:
            query += " WHERE date >= ?"
            params.append(start_date)
        elif end_date:
            query += " WHERE date <= ?"
            params.append(end_date)
        query += " ORDER BY date ASC"
        return [self._row_to_apod(row) for row in self._conn.execute(query, params).fetchall()]

    def get_apod(self, day: str) -> Optional[Apod]:
        row = self._conn.execute("SELECT * FROM apod_cache WHERE date = ?", (day,)).fetchone()
        return self._row_to_apod(row) if row is not None else None

    def is_apod_fresh(self, day: str, ttl: timedelta, now: datetime) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM apod_cache WHERE date = ? AND cached_at > ?",
            (day, _to_epoch(now - ttl)),
        ).fetchone()
        return row is not None

    @staticmethod
    def _row_to_apod(row: sqlite3.Row) -> Apod:
        return Apod(
            date=row["date"],
            title=row["title"],
            url=row["url"],
            hdurl=row["hdurl"] or None,
            explanation=row["explanation"] or "",
            media_type=row["media_type"],
            service_version=row["service_version"] or None,
            copyright=row["copyright"] or None,
        )

    # NEO rows

    def upsert_neo(self, neo: NearEarthObject, cached_at: datetime) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO neo_cache
            (neo_id, name, absolute_magnitude, estimated_diameter_min, estimated_diameter_max,
             is_potentially_hazardous, close_approach_date, miss_distance_km, relative_velocity_kmh,
             relative_velocity_kps, cached_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                neo.id,
                neo.name,
                neo.absolute_magnitude,
                neo.diameter_min_km,
                neo.diameter_max_km,
                int(neo.is_potentially_hazardous),
                neo.close_approach_date,
                neo.miss_distance_km,
                neo.relative_velocity_kmh,
                neo.relative_velocity_kps,
                _to_epoch(cached_at),
            ),
        )

    def get_neos(self, start_date: str, end_date: str) -> list[NearEarthObject]:
        rows = self._conn.execute(
            """
            SELECT * FROM neo_cache
            WHERE close_approach_date BETWEEN ? AND ?
            ORDER BY close_approach_date ASC
            """,
            (start_date, end_date),
        ).fetchall()
        return [
            NearEarthObject(
                id=row["neo_id"],
                name=row["name"],
                absolute_magnitude=row["absolute_magnitude"],
                diameter_min_km=row["estimated_diameter_min"] or 0.0,
                diameter_max_km=row["estimated_diameter_max"] or 0.0,
                is_potentially_hazardous=bool(row["is_potentially_hazardous"]),
                close_approach_date=row["close_approach_date"],
                miss_distance_km=row["miss_distance_km"] or 0.0,
                relative_velocity_kmh=row["relative_velocity_kmh"] or 0.0,
                relative_velocity_kps=row["relative_velocity_kps"],
            )
            for row in rows
        ]

    def has_fresh_neos(self, start_date: str, end_date: str, ttl: timedelta, now: datetime) -> bool:
        row = self._conn.execute(
            """
            SELECT COUNT(*) AS count FROM neo_cache
            WHERE close_approach_date BETWEEN ? AND ? AND cached_at > ?
            """,
            (start_date, end_date, _to_epoch(now - ttl)),
        ).fetchone()
        return bool(row["count"])

    # Generic freshness entries

    def get_cache_entry(self, key: str) -> Optional[CacheEntry]:
        row = self._conn.execute("SELECT key, payload, cached_at FROM cache_entries WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return CacheEntry(key=row["key"], payload=json.loads(row["payload"]), cached_at=_from_epoch(row["cached_at"]))

    def put_cache_entry(self, key: str, payload: Any, cached_at: datetime) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO cache_entries (key, payload, cached_at) VALUES (?, ?, ?)",
            (key, json.dumps(payload), _to_epoch(cached_at)),
        )
