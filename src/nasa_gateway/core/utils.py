from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from nasa_gateway.core.errors import ValidationError
from nasa_gateway.core.models import KNOWN_ROVERS

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_rfc3339(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def today_string(now: Optional[datetime] = None) -> str:
    return (now or utc_now()).astimezone(timezone.utc).date().isoformat()


def parse_iso_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD string, raising ValidationError otherwise."""
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        raise ValidationError(f"Invalid date format. Use YYYY-MM-DD. value={value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Invalid date format. Use YYYY-MM-DD. value={value!r}") from e


def date_range(start: str, end: str) -> list[str]:
    current = parse_iso_date(start)
    last = parse_iso_date(end)
    dates: list[str] = []
    while current <= last:
        dates.append(current.isoformat())
        current += timedelta(days=1)
    return dates


def normalize_rover(value: str) -> str:
    rover = (value or "").strip().lower()
    if not rover:
        raise ValidationError("Rover name must not be empty.")
    if rover not in KNOWN_ROVERS:
        raise ValidationError(f"Unknown rover: {value!r}. Expected one of {', '.join(KNOWN_ROVERS)}")
    return rover


def validate_period_key(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"Sol must be a non-negative integer, got {value!r}")
    return value
