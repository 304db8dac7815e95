"""Dark-pool dollar-volume classification.

The chart cannot vary marker size per point inside one series, so dark-pool
prints are split into four magnitude buckets, each rendered as its own series
with a fixed marker radius (3/5/7/9 px, independent of ``size_hint``).
``size_hint`` is the continuous per-print size curve; it is reported in the
crosshair detail panel for front ends that draw markers individually.
"""

from __future__ import annotations

import math
from enum import Enum

from elphie.feed.types import AnalysisPoint
from elphie.utils.helpers import scale_price

MILLION = 1_000_000


class Bucket(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"

    @property
    def series_name(self) -> str:
        return f"dark_pool_{self.value}"


# Lower bounds (inclusive), ascending.
BUCKET_THRESHOLDS: tuple[tuple[float, Bucket], ...] = (
    (100 * MILLION, Bucket.MEDIUM),
    (500 * MILLION, Bucket.LARGE),
    (1000 * MILLION, Bucket.XLARGE),
)

# Fixed marker radius per bucket series (px), as configured on the chart.
BUCKET_MARKER_RADIUS: dict[Bucket, int] = {
    Bucket.SMALL: 3,
    Bucket.MEDIUM: 5,
    Bucket.LARGE: 7,
    Bucket.XLARGE: 9,
}

# (dollar volume, marker px) calibration points, ascending by volume.
SIZE_POINTS: tuple[tuple[float, int], ...] = (
    (10 * MILLION, 2),
    (25 * MILLION, 3),
    (100 * MILLION, 4),
    (500 * MILLION, 6),
    (750 * MILLION, 7),
    (1000 * MILLION, 8),
    (1500 * MILLION, 9),
    (2000 * MILLION, 10),
)


def classify(dollar_volume: float) -> Bucket:
    """Map a dark-pool dollar volume to its bucket."""
    bucket = Bucket.SMALL
    for lower, candidate in BUCKET_THRESHOLDS:
        if dollar_volume >= lower:
            bucket = candidate
        else:
            break
    return bucket


def size_hint(dollar_volume: float) -> int:
    """Piecewise-linear marker size (px) for a dollar volume, clamped at both ends."""
    first_value, first_size = SIZE_POINTS[0]
    last_value, last_size = SIZE_POINTS[-1]
    if dollar_volume <= first_value:
        return first_size
    if dollar_volume >= last_value:
        return last_size

    for (lo_value, lo_size), (hi_value, hi_size) in zip(SIZE_POINTS, SIZE_POINTS[1:]):
        if lo_value <= dollar_volume <= hi_value:
            ratio = (dollar_volume - lo_value) / (hi_value - lo_value)
            # Round half up: 2.5px -> 3px
            return int(math.floor(lo_size + (hi_size - lo_size) * ratio + 0.5))

    return last_size


def marker_radius(bucket: Bucket) -> int:
    return BUCKET_MARKER_RADIUS[bucket]


def qualifies(point: AnalysisPoint) -> bool:
    """Only periods with both a dark-pool sum and VWAP get a marker."""
    return point.has_dark_pool


def bucket_for_point(point: AnalysisPoint, price_scale: float) -> Bucket | None:
    """Bucket for a point's dark-pool sum (wire units), or None when it has no marker."""
    if not qualifies(point):
        return None
    return classify(scale_price(point.dark_pool_sum, price_scale))
