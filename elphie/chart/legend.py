"""Legend and detail-panel formatting for crosshair inspection."""

from __future__ import annotations

from typing import Any

from elphie.feed.types import AnalysisPoint
from elphie.utils.helpers import ms_to_datetime, scale_price


def format_millions(value: float | int | None) -> str:
    """Compact number: 1_234_567 -> '1.23M', 123_456 -> '123.5K'."""
    if value is None:
        return "N/A"
    if abs(value) >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if abs(value) >= 1_000:
        return f"{value / 1_000:.1f}K"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,}"


def build_legend(point: AnalysisPoint, price_scale: float) -> dict[str, Any]:
    """Legend lines for the hovered bar.

    The dark-pool line is only present when the period has both a VWAP and a
    dollar volume.
    """
    c = point.candle

    def px(v: float) -> str:
        return f"{scale_price(v, price_scale):.2f}"

    legend: dict[str, Any] = {
        "ohlc": f"O: {px(c.open)} H: {px(c.high)} L: {px(c.low)} C: {px(c.close)}",
        "sweeps": (
            f"Bid: {format_millions(point.sweep_at_bid)} | "
            f"Ask: {format_millions(point.sweep_at_ask)} | "
            f"Unk: {format_millions(point.sweep_unknown)}"
        ),
        "darkPool": None,
    }
    if point.dark_pool_vwap and point.dark_pool_sum:
        vwap = scale_price(point.dark_pool_vwap, price_scale)
        volume = scale_price(point.dark_pool_sum, price_scale)
        largest = scale_price(point.largest_dark_pool_txn, price_scale)
        legend["darkPool"] = (
            f"DP VWAP: ${vwap:.2f} | $ Vol: {format_millions(volume)} | Largest: {format_millions(largest)}"
        )
    return legend


def candle_details(point: AnalysisPoint, price_scale: float) -> dict[str, Any]:
    """Full detail-panel values for the hovered bar."""
    c = point.candle
    return {
        "time": ms_to_datetime(c.period_start).isoformat(),
        "open": round(scale_price(c.open, price_scale), 2),
        "high": round(scale_price(c.high, price_scale), 2),
        "low": round(scale_price(c.low, price_scale), 2),
        "close": round(scale_price(c.close, price_scale), 2),
        "volume": c.volume,
        "darkPoolVolume": scale_price(point.dark_pool_sum, price_scale),
        "darkPoolVWAP": round(scale_price(point.dark_pool_vwap, price_scale), 2),
        "sweepAtBid": point.sweep_at_bid,
        "sweepAtAsk": point.sweep_at_ask,
        "sweepUnknown": point.sweep_unknown,
        "sweepRatio": None if point.sweep_ratio is None else round(point.sweep_ratio, 4),
    }
