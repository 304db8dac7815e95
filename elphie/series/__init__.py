"""Series reconciliation: store, pending merger, buckets, crosshair index, resync."""

from .buckets import Bucket, classify, size_hint
from .keyed import KeyedSeries
from .store import SERIES_NAMES, SeriesStore, StoreChange
from .pending import PendingAction, PendingDecision, PendingMerger
from .index import PointIndex
from .resync import ControllerState, ResyncController

__all__ = [
    "Bucket",
    "classify",
    "size_hint",
    "KeyedSeries",
    "SERIES_NAMES",
    "SeriesStore",
    "StoreChange",
    "PendingAction",
    "PendingDecision",
    "PendingMerger",
    "PointIndex",
    "ControllerState",
    "ResyncController",
]
