"""Time utilities: UTC clock and restaurant-local business days."""

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Return timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def resolve_zone(name: Optional[str], fallback: str = "UTC"):
    """Return a tzinfo for an IANA name, falling back when tzdata lacks it."""
    for candidate in (name, fallback):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return timezone.utc


def business_date(now: datetime, tz_name: Optional[str], fallback: str = "UTC") -> date:
    """Local calendar date of ``now`` in the restaurant's timezone."""
    return ensure_utc(now).astimezone(resolve_zone(tz_name, fallback)).date()


def local_midnight_utc(now: datetime, tz_name: Optional[str], fallback: str = "UTC") -> datetime:
    """UTC instant of the most recent local midnight for the restaurant."""
    zone = resolve_zone(tz_name, fallback)
    local_day = ensure_utc(now).astimezone(zone).date()
    return datetime.combine(local_day, time.min, tzinfo=zone).astimezone(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC (what the relational store hands back)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert to naive UTC for storage columns without timezone support."""
    if dt is None:
        return None
    return ensure_utc(dt).replace(tzinfo=None)
