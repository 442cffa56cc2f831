"""Utility helpers for the movie catalog service."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_release_date(value: object) -> date | None:
    """Parse provider dates such as ``2023-07-19``, ignoring junk values."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def mean_rounded(values: Iterable[float], *, digits: int = 1) -> float:
    """Return the arithmetic mean rounded half-up, or ``0`` when empty."""

    values = list(values)
    if not values:
        return 0
    mean = Decimal(str(sum(values))) / Decimal(len(values))
    quantum = Decimal(1).scaleb(-digits)
    return float(mean.quantize(quantum, rounding=ROUND_HALF_UP))


def canonical_json(payload: Any) -> str:
    """Serialise ``payload`` deterministically for use in cache keys."""

    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def escape_like(value: str, escape: str = "\\") -> str:
    """Escape SQL ``LIKE`` wildcards in ``value``."""

    return (
        value.replace(escape, escape * 2)
        .replace("%", f"{escape}%")
        .replace("_", f"{escape}_")
    )
