"""Chart surface contract and an in-memory implementation.

The contract mirrors lightweight-charts: a series accepts a bulk
``set_data(points)`` of ascending, unique-time points and a single-point
``update(point)`` that may only touch the last bar or append after it.

``InMemorySurface`` enforces that contract and records every operation as a
``ChartOp`` so the HTTP bridge can stream them to a browser chart.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from elphie.series.buckets import Bucket, marker_radius
from elphie.series.store import SERIES_NAMES


@runtime_checkable
class SeriesSink(Protocol):
    def set_data(self, points: list[Any]) -> None: ...

    def update(self, point: Any) -> None: ...


@runtime_checkable
class ChartSurface(Protocol):
    def series(self, name: str) -> SeriesSink: ...

    def set_visible_range(self, start: int | float, end: int | float) -> None: ...

    def fit_content(self) -> None: ...


@dataclass(frozen=True)
class ChartOp:
    """One recorded chart operation."""

    op: str
    series: str | None = None
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"op": self.op, "series": self.series, "data": self.data}


OpListener = Callable[[ChartOp], None]


def _as_dict(point: Any) -> Any:
    return point.to_dict() if hasattr(point, "to_dict") else point


def _time_of(point: Any) -> int | float:
    if isinstance(point, dict):
        return point["time"]
    return point.time


class InMemorySeries:
    """Series sink holding the displayed points."""

    def __init__(self, name: str, emit: OpListener | None = None, options: dict[str, Any] | None = None):
        self.name = name
        self.options = dict(options or {})
        self._points: list[Any] = []
        self._emit = emit

    @property
    def points(self) -> list[Any]:
        return list(self._points)

    @property
    def last_time(self) -> int | float | None:
        return _time_of(self._points[-1]) if self._points else None

    def set_data(self, points: list[Any]) -> None:
        times = [_time_of(p) for p in points]
        if any(b <= a for a, b in zip(times, times[1:])):
            raise ValueError(f"{self.name}: set_data requires strictly ascending unique times")
        self._points = list(points)
        if self._emit is not None:
            self._emit(ChartOp("set_data", self.name, [_as_dict(p) for p in points]))

    def update(self, point: Any) -> None:
        t = _time_of(point)
        last = self.last_time
        if last is not None and t < last:
            raise ValueError(f"{self.name}: cannot update oldest data (time {t} < last {last})")
        if last is not None and t == last:
            self._points[-1] = point
        else:
            self._points.append(point)
        if self._emit is not None:
            self._emit(ChartOp("update", self.name, _as_dict(point)))


def default_series_options() -> dict[str, dict[str, Any]]:
    """Series styling handed to the browser chart along with the data."""
    options: dict[str, dict[str, Any]] = {
        "candles": {
            "type": "candlestick",
            "pane": 0,
            "upColor": "#26a69a",
            "downColor": "#ef5350",
        },
        "sweep_at_bid": {"type": "histogram", "pane": 1, "color": "#ff1744", "base": 0},
        "sweep_at_ask": {"type": "histogram", "pane": 1, "color": "#00e676", "base": 0},
        "sweep_unknown": {"type": "histogram", "pane": 1, "color": "#ffa726", "base": 0},
    }
    alphas = {Bucket.SMALL: 0.5, Bucket.MEDIUM: 0.6, Bucket.LARGE: 0.7, Bucket.XLARGE: 0.8}
    for bucket in Bucket:
        radius = marker_radius(bucket)
        options[bucket.series_name] = {
            "type": "line",
            "pane": 0,
            "color": f"rgba(153, 102, 255, {alphas[bucket]})",
            "lineWidth": 0,
            "pointMarkersVisible": True,
            "pointMarkersRadius": radius,
            "crosshairMarkerRadius": radius,
            "lastValueVisible": False,
            "priceLineVisible": False,
        }
    return options


class InMemorySurface:
    """Eight named series plus the visible range, with operation fan-out."""

    def __init__(self, names: Iterable[str] = SERIES_NAMES):
        self._listeners: list[OpListener] = []
        options = default_series_options()
        self._series: dict[str, InMemorySeries] = {
            name: InMemorySeries(name, emit=self._emit, options=options.get(name)) for name in names
        }
        self.visible_range: tuple[int | float, int | float] | None = None

    def add_listener(self, listener: OpListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _emit(self, op: ChartOp) -> None:
        for listener in list(self._listeners):
            listener(op)

    def series(self, name: str) -> InMemorySeries:
        return self._series[name]

    @property
    def names(self) -> list[str]:
        return list(self._series)

    def set_visible_range(self, start: int | float, end: int | float) -> None:
        self.visible_range = (start, end)
        self._emit(ChartOp("visible_range", None, {"from": start, "to": end}))

    def fit_content(self) -> None:
        self.visible_range = None
        self._emit(ChartOp("fit_content"))

    def state(self) -> dict[str, Any]:
        """Everything a freshly connected chart needs to draw the current view."""
        return {
            "series": {name: [_as_dict(p) for p in s.points] for name, s in self._series.items()},
            "options": {name: s.options for name, s in self._series.items()},
            "visibleRange": (
                None
                if self.visible_range is None
                else {"from": self.visible_range[0], "to": self.visible_range[1]}
            ),
        }
