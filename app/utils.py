"""Utility helpers for the Movies API."""

from __future__ import annotations

import math
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime, as stored in the database."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_date(value: object) -> date | None:
    """Parse a ``YYYY-MM-DD`` string, returning ``None`` for blank or malformed input."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def round_rating(value: float | None) -> float:
    """Round an aggregate rating to the stored single decimal place."""

    if value is None:
        return 0.0
    return round(float(value), 1)


def total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return math.ceil(total / limit)
