"""Series reconciliation store.

The store is the single owner of the session's analysis history and of every
derived chart series. Two write paths feed it:

* ``load_snapshot``: a full history replace. Points are deduplicated by
  ``periodStart`` (snapshot policy, first occurrence by default), sorted, and
  every series is rebuilt.
* ``append_point``: one closed period. Every series is upserted by key, so a
  duplicate or late delivery updates in place instead of appending a second
  bar (last write wins).

Invalid prices (any non-positive OHLC field) keep a point out of the candle
series only; its sweep and dark-pool entries are unaffected.

Listeners are notified synchronously after each mutation commits.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable

import structlog

from elphie.config import Settings, get_settings
from elphie.feed.types import AnalysisPoint, Candle, CandlePoint, ValuePoint
from elphie.utils import get_logger
from elphie.utils.helpers import scale_price, to_chart_time

from .buckets import Bucket, bucket_for_point, qualifies
from .keyed import KeyedSeries

CANDLES = "candles"
SWEEP_AT_BID = "sweep_at_bid"
SWEEP_AT_ASK = "sweep_at_ask"
SWEEP_UNKNOWN = "sweep_unknown"
SWEEP_SERIES = (SWEEP_AT_BID, SWEEP_AT_ASK, SWEEP_UNKNOWN)
DARK_POOL_SERIES = tuple(b.series_name for b in Bucket)
SERIES_NAMES = (CANDLES,) + SWEEP_SERIES + DARK_POOL_SERIES


@dataclass(frozen=True)
class StoreChange:
    """Committed mutation, as seen by listeners.

    kind: ``reset`` | ``snapshot`` | ``upsert`` | ``remove``
    """

    kind: str
    series: tuple[str, ...]
    key: int | float | None = None
    point: AnalysisPoint | None = None


Listener = Callable[[StoreChange], None]


class SeriesStore:
    """Canonical history plus the eight derived chart series."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        logger: structlog.BoundLogger | None = None,
    ):
        self.settings = settings or get_settings()
        self.logger = (logger or get_logger("series.store")).bind(component="store")
        self._history: list[AnalysisPoint] = []
        self._points: KeyedSeries[AnalysisPoint] = KeyedSeries("points")
        self._series: dict[str, KeyedSeries[Any]] = {name: KeyedSeries(name) for name in SERIES_NAMES}
        # key -> bucket currently holding that key's dark-pool marker
        self._bucket_of: dict[int | float, Bucket] = {}
        # candle keys currently showing a forming (pending) bar
        self._pending_keys: set[int | float] = set()
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                self.logger.error("store_listener_failed", change=change.kind, error=str(e))

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def time_key(self, period_start: int) -> int | float:
        return to_chart_time(period_start, self.settings.time_divisor_ms)

    def _candle_point(self, candle: Candle) -> CandlePoint:
        scale = self.settings.price_scale
        return CandlePoint(
            time=self.time_key(candle.period_start),
            open=scale_price(candle.open, scale),
            high=scale_price(candle.high, scale),
            low=scale_price(candle.low, scale),
            close=scale_price(candle.close, scale),
        )

    def _value_point(self, point: AnalysisPoint, value: float) -> ValuePoint:
        return ValuePoint(time=self.time_key(point.period_start), value=value)

    def _dark_pool_point(self, point: AnalysisPoint) -> ValuePoint:
        return self._value_point(point, scale_price(point.dark_pool_vwap, self.settings.price_scale))

    def _sweep_values(self, point: AnalysisPoint) -> dict[str, float]:
        return {
            SWEEP_AT_BID: point.sweep_at_bid,
            SWEEP_AT_ASK: point.sweep_at_ask,
            SWEEP_UNKNOWN: point.sweep_unknown,
        }

    # ------------------------------------------------------------------
    # Write paths
    # ------------------------------------------------------------------

    def _dedupe(
        self,
        points: Iterable[AnalysisPoint],
        accept: Callable[[AnalysisPoint], bool] | None = None,
    ) -> dict[int | float, AnalysisPoint]:
        """Resolve duplicate keys by the snapshot policy.

        Only points passing ``accept`` compete for a key, so an unusable first
        occurrence does not hide a usable later one.
        """
        keep_first = self.settings.snapshot_duplicate_policy == "first"
        out: dict[int | float, AnalysisPoint] = {}
        duplicates = 0
        for point in points:
            if accept is not None and not accept(point):
                continue
            key = self.time_key(point.period_start)
            if key in out:
                duplicates += 1
                if keep_first:
                    continue
            out[key] = point
        if duplicates and accept is None:
            self.logger.debug("snapshot_duplicates_dropped", duplicates=duplicates)
        return out

    def load_snapshot(self, points: Iterable[AnalysisPoint]) -> None:
        """Replace all state with a history snapshot.

        Each series is deduplicated over the points it can display: candles
        over valid-price points, dark-pool buckets over points with a dark-pool
        print, sweeps over every point.
        """
        points = list(points)
        canonical = self._dedupe(points)

        self._history = points
        self._points.replace(canonical.items())
        self._pending_keys.clear()
        self._bucket_of.clear()

        ordered = self._points.values()
        valid = self._dedupe(points, lambda p: p.candle.is_valid_price())
        self._series[CANDLES].replace((key, self._candle_point(p.candle)) for key, p in valid.items())
        for name in SWEEP_SERIES:
            self._series[name].replace(
                (self.time_key(p.period_start), self._value_point(p, self._sweep_values(p)[name])) for p in ordered
            )

        by_bucket: dict[Bucket, list[tuple[int | float, ValuePoint]]] = {b: [] for b in Bucket}
        for key, p in self._dedupe(points, qualifies).items():
            bucket = bucket_for_point(p, self.settings.price_scale)
            self._bucket_of[key] = bucket
            by_bucket[bucket].append((key, self._dark_pool_point(p)))
        for bucket, items in by_bucket.items():
            self._series[bucket.series_name].replace(items)

        self.logger.info(
            "snapshot_loaded",
            received=len(points),
            unique=len(ordered),
            candles=len(valid),
            **{f"dark_pool_{b.value}": len(by_bucket[b]) for b in Bucket},
        )
        self._notify(StoreChange(kind="snapshot", series=SERIES_NAMES))

    def append_point(self, point: AnalysisPoint) -> None:
        """Add one closed period, upserting every derived series by key."""
        key = self.time_key(point.period_start)
        self._history.append(point)
        self._points.upsert(key, point)

        changed: list[str] = []
        removed: list[str] = []

        if point.candle.is_valid_price():
            self._series[CANDLES].upsert(key, self._candle_point(point.candle))
            self._pending_keys.discard(key)
            changed.append(CANDLES)
        elif key in self._pending_keys:
            # The forming bar closed with unusable prices; do not leave it on the chart.
            self._pending_keys.discard(key)
            if self._series[CANDLES].remove(key):
                removed.append(CANDLES)

        for name, value in self._sweep_values(point).items():
            self._series[name].upsert(key, self._value_point(point, value))
            changed.append(name)

        new_bucket = bucket_for_point(point, self.settings.price_scale)
        old_bucket = self._bucket_of.get(key)
        if old_bucket is not None and old_bucket != new_bucket:
            self._series[old_bucket.series_name].remove(key)
            removed.append(old_bucket.series_name)
            del self._bucket_of[key]
        if new_bucket is not None:
            self._series[new_bucket.series_name].upsert(key, self._dark_pool_point(point))
            self._bucket_of[key] = new_bucket
            changed.append(new_bucket.series_name)

        if removed:
            self._notify(StoreChange(kind="remove", series=tuple(removed), key=key, point=point))
        self._notify(StoreChange(kind="upsert", series=tuple(changed), key=key, point=point))

    def apply_pending_candle(self, pending: Candle) -> None:
        """Show the forming period's OHLC on the candle series.

        Canonical closed history is not touched; the next closed point with the
        same key overwrites the bar.
        """
        if not pending.is_valid_price():
            return
        key = self.time_key(pending.period_start)
        self._series[CANDLES].upsert(key, self._candle_point(pending))
        self._pending_keys.add(key)
        self._notify(StoreChange(kind="upsert", series=(CANDLES,), key=key))

    def reset(self) -> None:
        """Clear raw history and every derived series."""
        self._history = []
        self._points.clear()
        for series in self._series.values():
            series.clear()
        self._bucket_of.clear()
        self._pending_keys.clear()
        self._notify(StoreChange(kind="reset", series=SERIES_NAMES))

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def history(self) -> list[AnalysisPoint]:
        """Raw history as received (snapshot list plus appends)."""
        return list(self._history)

    def __len__(self) -> int:
        return len(self._history)

    def points(self) -> list[AnalysisPoint]:
        """Canonical deduplicated points, ascending by period start."""
        return self._points.values()

    def get_point(self, key: int | float) -> AnalysisPoint | None:
        return self._points.get(key)

    def last_point(self) -> AnalysisPoint | None:
        return self._points.last()

    def series(self, name: str) -> list[Any]:
        return self._series[name].values()

    def series_point(self, name: str, key: int | float) -> Any | None:
        return self._series[name].get(key)

    def series_keys(self, name: str) -> list[int | float]:
        return self._series[name].keys()

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        """All series as JSON-ready lists."""
        return {name: [p.to_dict() for p in self._series[name]] for name in SERIES_NAMES}
