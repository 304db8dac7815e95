"""Small time / unit helpers."""

from __future__ import annotations

import time
from datetime import date, datetime, timezone


def timestamp_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def to_chart_time(period_start: int | float, divisor: int = 1000) -> int | float:
    """Normalize a wire period start (ms) to the chart time key (seconds).

    Exact multiples come back as ``int`` so they hash equal to the integer keys
    the chart hands back on crosshair events.
    """
    if divisor <= 1:
        return period_start
    if float(period_start).is_integer() and int(period_start) % divisor == 0:
        return int(period_start) // divisor
    return period_start / divisor


def scale_price(value: float | int | None, price_scale: float) -> float:
    """Convert a wire price (e.g. cents) to chart units (dollars)."""
    if value is None:
        return 0.0
    if not price_scale:
        return float(value)
    return float(value) / float(price_scale)


def parse_session_date(value: str) -> str:
    """Validate a ``YYYY-MM-DD`` trading date and return it normalized."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("session date must be a non-empty YYYY-MM-DD string")
    try:
        parsed = date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValueError(f"Invalid session date '{value}'. Use YYYY-MM-DD.") from e
    return parsed.isoformat()
