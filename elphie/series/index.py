"""Crosshair resolver: chart time key -> originating analysis point."""

from __future__ import annotations

from typing import Any, Callable

from elphie.chart.legend import build_legend, candle_details
from elphie.feed.types import AnalysisPoint
from elphie.utils.helpers import scale_price

from .buckets import bucket_for_point, size_hint
from .store import SeriesStore, StoreChange


class PointIndex:
    """O(1) lookup over the store's canonical points.

    Kept in sync through a store listener: rebuilt on snapshot, cleared on
    reset, patched on upsert.
    """

    def __init__(self, store: SeriesStore):
        self.store = store
        self._by_time: dict[int | float, AnalysisPoint] = {}
        self._detach: Callable[[], None] | None = store.add_listener(self._on_change)
        self.rebuild()

    def rebuild(self) -> None:
        self._by_time = {self.store.time_key(p.period_start): p for p in self.store.points()}

    def _on_change(self, change: StoreChange) -> None:
        if change.kind == "reset":
            self._by_time.clear()
        elif change.kind == "snapshot":
            self.rebuild()
        elif change.kind == "upsert" and change.point is not None:
            self._by_time[change.key] = change.point

    def close(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def __len__(self) -> int:
        return len(self._by_time)

    def resolve(self, time_key: int | float | None) -> AnalysisPoint | None:
        """Point at exactly ``time_key``, or None (gap / no hover)."""
        if time_key is None:
            return None
        return self._by_time.get(time_key)

    def describe(self, time_key: int | float | None) -> dict[str, Any] | None:
        """Legend + detail panel for ``time_key``; None means clear the panel."""
        point = self.resolve(time_key)
        if point is None:
            return None
        scale = self.store.settings.price_scale
        bucket = bucket_for_point(point, scale)
        return {
            "time": time_key,
            "legend": build_legend(point, scale),
            "details": candle_details(point, scale),
            "darkPool": None
            if bucket is None
            else {
                "bucket": bucket.value,
                "series": bucket.series_name,
                "markerSize": size_hint(scale_price(point.dark_pool_sum, scale)),
            },
            "point": point.to_dict(),
        }
