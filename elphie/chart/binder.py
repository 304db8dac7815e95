"""Pushes committed store changes onto a chart surface."""

from __future__ import annotations

from typing import Callable

import structlog

from elphie.config import Settings, get_settings
from elphie.feed.types import CandlePoint
from elphie.series.store import SeriesStore, StoreChange
from elphie.utils import get_logger

from .surface import ChartSurface


def initial_visible_range(
    candles: list[CandlePoint],
    *,
    hours: float = 2.0,
    max_bars: int = 120,
    right_pad_sec: int = 300,
) -> tuple[int | float, int | float] | None:
    """Opening zoom after a snapshot.

    Shows the last ``hours`` or the last ``max_bars`` bars, whichever window is
    shorter, with ``right_pad_sec`` of empty space after the last bar. None
    means there is nothing to zoom to (fit content instead).
    """
    if not candles:
        return None
    last_time = candles[-1].time
    window_start = last_time - hours * 3600
    start_index = max(0, len(candles) - max_bars)
    start_time = candles[start_index].time
    start = max(window_start, start_time)
    if float(start).is_integer():
        start = int(start)
    return start, last_time + right_pad_sec


class ChartBinder:
    """Store listener that mirrors every series onto ``surface``.

    ``upsert`` changes become single-point updates when the key is at or after
    the surface's last bar; an older key (late delivery) is repaired with a
    bulk ``set_data`` of the whole store series.
    """

    def __init__(
        self,
        store: SeriesStore,
        surface: ChartSurface,
        settings: Settings | None = None,
        *,
        logger: structlog.BoundLogger | None = None,
    ):
        self.store = store
        self.surface = surface
        self.settings = settings or get_settings()
        self.logger = (logger or get_logger("chart.binder")).bind(component="binder")
        self._last_time: dict[str, int | float | None] = {}
        self._detach: Callable[[], None] | None = store.add_listener(self.on_change)

    def close(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def on_change(self, change: StoreChange) -> None:
        if change.kind in ("snapshot", "reset"):
            for name in change.series:
                self._set_all(name)
            if change.kind == "snapshot":
                self._apply_initial_range()
            return

        if change.kind == "remove":
            for name in change.series:
                self._set_all(name)
            return

        if change.kind == "upsert" and change.key is not None:
            for name in change.series:
                self._update_one(name, change.key)

    def _set_all(self, name: str) -> None:
        points = self.store.series(name)
        self.surface.series(name).set_data(points)
        self._last_time[name] = points[-1].time if points else None

    def _update_one(self, name: str, key: int | float) -> None:
        last = self._last_time.get(name)
        if last is not None and key < last:
            self.logger.debug("chart_out_of_order_repair", series=name, key=key, last=last)
            self._set_all(name)
            return
        point = self.store.series_point(name, key)
        if point is None:
            self._set_all(name)
            return
        self.surface.series(name).update(point)
        self._last_time[name] = key

    def _apply_initial_range(self) -> None:
        rng = initial_visible_range(
            self.store.series("candles"),
            hours=self.settings.initial_range_hours,
            max_bars=self.settings.initial_range_max_bars,
            right_pad_sec=self.settings.initial_range_right_pad_sec,
        )
        if rng is None:
            self.surface.fit_content()
        else:
            self.surface.set_visible_range(*rng)
