"""
Unit tests for metric preprocessing.

Tests statistics, outlier trimming, gap filling, normalisation, trend
estimation and pandas conversion/aggregation.
"""

import math

import pytest

from testpulse.core.config import HOUR_MS, PreprocessConfig
from testpulse.core.exceptions import DataValidationError
from testpulse.data.preprocessor import (
    DataPreprocessor,
    aggregate,
    calculate_percentile,
    calculate_stats,
    calculate_zscore,
    denormalize,
    detect_trend,
    detrend,
    fill_missing_values,
    normalize,
    points_from_frame,
    remove_outliers,
    remove_outliers_iqr,
    smooth,
)
from testpulse.data.schema import DataPoint


def _points(values, step=1000, start=0):
    return [DataPoint(timestamp=start + i * step, value=v) for i, v in enumerate(values)]


class TestCalculateStats:
    """Test moment and order statistics."""

    def test_empty_series_is_all_zero(self):
        stats = calculate_stats([])

        assert stats.mean == 0.0
        assert stats.std == 0.0
        assert stats.q3 == 0.0

    def test_population_std_and_floor_quartiles(self):
        stats = calculate_stats([2, 4, 4, 4, 5, 5, 7, 9])

        assert stats.mean == 5.0
        assert stats.std == 2.0
        assert stats.min == 2
        assert stats.max == 9
        assert stats.median == 4.5
        assert stats.q1 == 4  # sorted[2]
        assert stats.q3 == 7  # sorted[6]

    def test_percentile(self):
        values = list(range(1, 101))

        assert calculate_percentile(values, 50) == 51
        assert calculate_percentile(values, 100) == 100
        assert calculate_percentile([], 50) == 0.0

    def test_zscore_zero_std(self):
        assert calculate_zscore(10.0, 5.0, 0.0) == 0.0
        assert calculate_zscore(9.0, 5.0, 2.0) == 2.0


class TestOutlierRemoval:
    """Test z-score and IQR trimming."""

    def test_zscore_removes_extreme_point(self):
        points = _points([10.0] * 20 + [1000.0])

        kept, removed = remove_outliers(points, threshold=3.0)

        assert removed == 1
        assert all(p.value == 10.0 for p in kept)

    def test_short_series_unchanged(self):
        points = _points([1.0, 1000.0])

        kept, removed = remove_outliers(points)

        assert removed == 0
        assert len(kept) == 2

    def test_iqr_trimming(self):
        points = _points([10, 11, 12, 13, 14, 15, 100])

        kept, removed = remove_outliers_iqr(points)

        assert removed == 1
        assert max(p.value for p in kept) == 15

    def test_iqr_needs_four_points(self):
        kept, removed = remove_outliers_iqr(_points([1, 2, 300]))
        assert removed == 0
        assert len(kept) == 3


class TestFillMissing:
    """Test gap interpolation."""

    def test_linear_fill(self):
        points = [
            DataPoint(timestamp=0, value=0.0),
            DataPoint(timestamp=1000, value=1.0),
            DataPoint(timestamp=2000, value=2.0),
            DataPoint(timestamp=5000, value=5.0),
        ]

        filled, count = fill_missing_values(points, "linear")

        assert count == 2
        assert [p.timestamp for p in filled] == [0, 1000, 2000, 3000, 4000, 5000]
        assert all(math.isclose(p.value, i) for i, p in enumerate(filled))

    def test_previous_fill(self):
        points = _points([1.0, 2.0, 3.0]) + [DataPoint(timestamp=5000, value=9.0)]

        filled, count = fill_missing_values(points, "previous")

        assert count == 2
        assert [p.value for p in filled] == [1.0, 2.0, 3.0, 3.0, 3.0, 9.0]

    def test_irregular_series_is_skipped(self):
        points = _points([1.0, 2.0, 3.0]) + [DataPoint(timestamp=1_000_000, value=4.0)]

        filled, count = fill_missing_values(points)

        assert count == 0
        assert len(filled) == 4

    def test_unknown_method_raises(self):
        with pytest.raises(DataValidationError):
            fill_missing_values(_points([1.0, 2.0]), "spline")


class TestNormalize:
    def test_zscore_round_trip(self):
        points = _points([2, 4, 4, 4, 5, 5, 7, 9])
        original = calculate_stats([p.value for p in points])

        normalized = normalize(points, "zscore")

        assert normalized[0].value == -1.5
        assert denormalize(normalized[0].value, original, "zscore") == 2.0

    def test_minmax_constant_series(self):
        normalized = normalize(_points([3.0, 3.0, 3.0]), "minmax")
        assert [p.value for p in normalized] == [0.0, 0.0, 0.0]

    def test_unknown_method(self):
        with pytest.raises(DataValidationError):
            normalize(_points([1.0]), "log")


class TestTrend:
    def test_linear_uptrend(self):
        trend = detect_trend(_points([float(i) for i in range(20)]))

        assert trend.has_trend
        assert trend.direction == "up"
        assert math.isclose(trend.slope, 1.0)
        assert math.isclose(trend.r_squared, 1.0)

    def test_flat_series(self):
        trend = detect_trend(_points([5.0] * 10))

        assert not trend.has_trend
        assert trend.direction == "flat"

    def test_detrend_removes_slope(self):
        flattened = detrend(_points([float(i) for i in range(11)]))
        assert all(math.isclose(p.value, 5.0) for p in flattened)

    def test_smooth_centred_window(self):
        smoothed = smooth(_points([0.0, 3.0, 6.0, 9.0]), window_size=3)
        assert [p.value for p in smoothed] == [1.5, 3.0, 6.0, 7.5]


class TestPandasInterop:
    def test_points_from_frame(self, metric_frame, hourly_points):
        points = points_from_frame(metric_frame)

        assert len(points) == len(hourly_points)
        assert points[0] == hourly_points[0]
        assert points[-1].timestamp == hourly_points[-1].timestamp

    def test_missing_value_column(self, metric_frame):
        with pytest.raises(DataValidationError):
            points_from_frame(metric_frame, value_col="duration")

    def test_aggregate_mean_per_day(self, hourly_points):
        daily = aggregate(hourly_points, 24 * HOUR_MS, "mean")

        assert len(daily) == 2
        assert daily[0].timestamp == hourly_points[0].timestamp
        assert math.isclose(daily[0].value, sum(p.value for p in hourly_points[:24]) / 24)

    def test_aggregate_rejects_bad_input(self, hourly_points):
        with pytest.raises(DataValidationError):
            aggregate(hourly_points, 0)
        with pytest.raises(DataValidationError):
            aggregate(hourly_points, HOUR_MS, "median")


class TestDataPreprocessor:
    def test_pipeline_sorts_and_cleans(self):
        points = list(reversed(_points([10.0] * 20 + [1000.0])))

        result = DataPreprocessor().preprocess(points)

        assert result.removed_outliers == 1
        assert [p.timestamp for p in result.data] == sorted(p.timestamp for p in result.data)
        assert result.stats.mean == 10.0

    def test_zero_removal_counts_as_removed(self):
        config = PreprocessConfig(remove_zeros=True, remove_outliers=False, fill_missing=False)

        result = DataPreprocessor(config).preprocess(_points([0.0, 5.0, 0.0, 6.0]))

        assert result.removed_outliers == 2
        assert [p.value for p in result.data] == [5.0, 6.0]

    def test_empty_input(self):
        result = DataPreprocessor().preprocess([])
        assert result.data == []
