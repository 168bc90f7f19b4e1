"""Timestamp coercion shared by the billing domains."""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_optional_datetime(value: object) -> Optional[datetime]:
    """Coerce ISO strings, unix seconds, dates and datetimes into aware datetimes.

    Unparseable input yields ``None`` so callers treat it as missing.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        candidate = value.strip()
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            return ensure_aware(datetime.fromisoformat(candidate))
        except ValueError:
            return None
    return None


def sort_key(value: Optional[datetime]) -> float:
    """Epoch seconds for ordering; missing timestamps sort as the epoch."""

    if value is None:
        return 0.0
    return ensure_aware(value).timestamp()


__all__ = ["ensure_aware", "parse_optional_datetime", "sort_key", "utc_now"]
