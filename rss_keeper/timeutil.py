"""Civil-date helpers for the fixed UTC+9 reference calendar."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

REFERENCE_OFFSET = timedelta(hours=9)
REFERENCE_TZ = timezone(REFERENCE_OFFSET, "UTC+09:00")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def civil_date_in(instant: datetime, offset: timedelta = REFERENCE_OFFSET) -> date:
    """Return the calendar date of ``instant`` as observed at ``offset`` from UTC."""
    return ensure_aware(instant).astimezone(timezone(offset)).date()


def civil_date_key(instant: datetime, offset: timedelta = REFERENCE_OFFSET) -> str:
    return civil_date_in(instant, offset).isoformat()


def today_key(now: Optional[datetime] = None) -> str:
    """Return today's ``YYYY-MM-DD`` in the reference timezone."""
    return civil_date_key(now or utc_now())


def parse_date_key(value: str) -> date:
    """Validate a ``YYYY-MM-DD`` string, raising ValueError otherwise."""
    try:
        parsed = date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date {value!r}; expected YYYY-MM-DD") from exc
    if parsed.isoformat() != value:
        raise ValueError(f"Invalid date {value!r}; expected YYYY-MM-DD")
    return parsed
