"""Shared utilities."""

from .helpers import (
    ms_to_datetime,
    parse_session_date,
    scale_price,
    timestamp_ms,
    to_chart_time,
)
from .logging import get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "ms_to_datetime",
    "parse_session_date",
    "scale_price",
    "timestamp_ms",
    "to_chart_time",
]
