"""Tests for dark-pool bucket classification and marker sizing."""

import pytest

from elphie.series.buckets import (
    Bucket,
    bucket_for_point,
    classify,
    marker_radius,
    qualifies,
    size_hint,
)

from factories import make_point


class TestClassify:
    """Bucket thresholds at 100M / 500M / 1000M, lower bound inclusive."""

    @pytest.mark.parametrize(
        "dollars, expected",
        [
            (0, Bucket.SMALL),
            (99_999_999, Bucket.SMALL),
            (100_000_000, Bucket.MEDIUM),
            (499_999_999, Bucket.MEDIUM),
            (500_000_000, Bucket.LARGE),
            (999_999_999, Bucket.LARGE),
            (1_000_000_000, Bucket.XLARGE),
            (25_000_000_000, Bucket.XLARGE),
        ],
    )
    def test_boundaries(self, dollars, expected):
        assert classify(dollars) is expected

    def test_series_names(self):
        assert [b.series_name for b in Bucket] == [
            "dark_pool_small",
            "dark_pool_medium",
            "dark_pool_large",
            "dark_pool_xlarge",
        ]


class TestSizeHint:
    def test_calibration_points(self):
        assert size_hint(10_000_000) == 2
        assert size_hint(25_000_000) == 3
        assert size_hint(100_000_000) == 4
        assert size_hint(500_000_000) == 6
        assert size_hint(2_000_000_000) == 10

    def test_interpolates_and_rounds_half_up(self):
        # halfway between 10M/2px and 25M/3px
        assert size_hint(17_500_000) == 3
        # 300M is halfway between 100M/4px and 500M/6px
        assert size_hint(300_000_000) == 5
        # 1.25B: 8.5px between 1B/8px and 1.5B/9px
        assert size_hint(1_250_000_000) == 9

    def test_clamped(self):
        assert size_hint(0) == 2
        assert size_hint(1_000_000) == 2
        assert size_hint(5_000_000_000) == 10

    def test_monotonic(self):
        sizes = [size_hint(v * 10_000_000) for v in range(0, 260)]
        assert sizes == sorted(sizes)


def test_marker_radius_grows_with_bucket():
    radii = [marker_radius(b) for b in Bucket]
    assert radii == [3, 5, 7, 9]


def test_bucket_for_point_converts_cents():
    # 150M dollars in cents
    point = make_point(60_000, dark_pool_sum=15_000_000_000, dark_pool_vwap=10_010)
    assert qualifies(point)
    assert bucket_for_point(point, price_scale=100) is Bucket.MEDIUM


def test_bucket_for_point_requires_sum_and_vwap():
    assert bucket_for_point(make_point(0, dark_pool_sum=5_000, dark_pool_vwap=0), 100) is None
    assert bucket_for_point(make_point(0, dark_pool_sum=0, dark_pool_vwap=10_000), 100) is None
