"""Feed data types and their wire (camelCase JSON) parsing."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from elphie.errors import MalformedMessage
from elphie.utils.helpers import parse_session_date


def _num(raw: Mapping[str, Any], key: str, default: float = 0.0) -> float:
    value = raw.get(key)
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise MalformedMessage(f"field '{key}' is not numeric: {value!r}") from e
    if not math.isfinite(number):
        raise MalformedMessage(f"field '{key}' is not finite: {value!r}")
    return number


def _period_start(raw: Mapping[str, Any]) -> int:
    value = raw.get("periodStart")
    if value is None:
        raise MalformedMessage("candle is missing 'periodStart'")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise MalformedMessage(f"'periodStart' is not an integer: {value!r}") from e


@dataclass(frozen=True)
class Candle:
    """One closed (or forming) price period. Prices are in wire units (cents)."""

    period_start: int
    open: float
    high: float
    low: float
    close: float
    volume: int = 0

    def is_valid_price(self) -> bool:
        return self.open > 0 and self.high > 0 and self.low > 0 and self.close > 0

    @classmethod
    def from_dict(cls, raw: Any) -> "Candle":
        if not isinstance(raw, Mapping):
            raise MalformedMessage(f"candle must be an object, got {type(raw).__name__}")
        return cls(
            period_start=_period_start(raw),
            open=_num(raw, "open"),
            high=_num(raw, "high"),
            low=_num(raw, "low"),
            close=_num(raw, "close"),
            volume=int(_num(raw, "volume")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "periodStart": self.period_start,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


# The forming period has the same shape as a closed candle.
PendingPeriod = Candle


@dataclass(frozen=True)
class AnalysisPoint:
    """One closed period with its sweep and dark-pool metrics."""

    candle: Candle
    sweep_at_bid: float = 0.0
    sweep_at_ask: float = 0.0
    sweep_unknown: float = 0.0
    dark_pool_sum: float = 0.0
    dark_pool_vwap: float = 0.0
    largest_dark_pool_txn: float = 0.0
    sweep_ratio: float | None = None

    @property
    def period_start(self) -> int:
        return self.candle.period_start

    @property
    def has_dark_pool(self) -> bool:
        return self.dark_pool_sum > 0 and self.dark_pool_vwap > 0

    @classmethod
    def from_dict(cls, raw: Any) -> "AnalysisPoint":
        if not isinstance(raw, Mapping):
            raise MalformedMessage(f"analysis point must be an object, got {type(raw).__name__}")
        if "candle" not in raw:
            raise MalformedMessage("analysis point is missing 'candle'")
        ratio = raw.get("sweepRatio")
        return cls(
            candle=Candle.from_dict(raw["candle"]),
            sweep_at_bid=_num(raw, "sweepAtBid"),
            sweep_at_ask=_num(raw, "sweepAtAsk"),
            sweep_unknown=_num(raw, "sweepUnknown"),
            dark_pool_sum=_num(raw, "darkPoolSum"),
            dark_pool_vwap=_num(raw, "darkPoolVWAP"),
            largest_dark_pool_txn=_num(raw, "largestDarkPoolTxn"),
            sweep_ratio=None if ratio is None else _num(raw, "sweepRatio"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "candle": self.candle.to_dict(),
            "sweepAtBid": self.sweep_at_bid,
            "sweepAtAsk": self.sweep_at_ask,
            "sweepUnknown": self.sweep_unknown,
            "darkPoolSum": self.dark_pool_sum,
            "darkPoolVWAP": self.dark_pool_vwap,
            "largestDarkPoolTxn": self.largest_dark_pool_txn,
        }
        if self.sweep_ratio is not None:
            out["sweepRatio"] = self.sweep_ratio
        return out


def parse_points(raw: Any) -> list[AnalysisPoint]:
    """Parse a history snapshot payload (a JSON array of points)."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise MalformedMessage(f"history snapshot must be an array, got {type(raw).__name__}")
    return [AnalysisPoint.from_dict(item) for item in raw]


@dataclass(frozen=True)
class Session:
    """A selected trading date, optionally narrowed to a ticker / interval."""

    date: str
    ticker: str | None = None
    interval: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", parse_session_date(self.date))

    @classmethod
    def from_dict(cls, raw: Any) -> "Session":
        if not isinstance(raw, Mapping):
            raise MalformedMessage("session payload must be an object")
        ymd = raw.get("date")
        if not ymd:
            raise MalformedMessage("session payload is missing 'date'")
        try:
            return cls(
                date=str(ymd),
                ticker=raw.get("ticker") or None,
                interval=raw.get("interval") or None,
            )
        except ValueError as e:
            raise MalformedMessage(str(e)) from e


@dataclass(frozen=True)
class CandlePoint:
    """Chart-ready OHLC bar (chart time, dollar prices)."""

    time: int | float
    open: float
    high: float
    low: float
    close: float

    def to_dict(self) -> dict[str, Any]:
        return {"time": self.time, "open": self.open, "high": self.high, "low": self.low, "close": self.close}


@dataclass(frozen=True)
class ValuePoint:
    """Chart-ready ``{time, value}`` point for histogram / line series."""

    time: int | float
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"time": self.time, "value": self.value}


@dataclass
class PendingMetrics:
    """Latest metrics for the forming period; display only."""

    values: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, raw: Any) -> "PendingMetrics":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise MalformedMessage("pending metrics payload must be an object")
        return cls(values=dict(raw))
