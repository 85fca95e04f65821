"""
Unit tests for seasonality detection and adjustment.
"""

import math

from testpulse.core.config import DAY_MS, HOUR_MS
from testpulse.data.schema import DataPoint, SeasonalityConfig, SeasonalPattern
from testpulse.data.seasonality import (
    SeasonalityAnalyzer,
    day_bucket,
    hour_bucket,
    week_of_month_bucket,
)

from conftest import T0


def _day_night_series(days=4):
    """Hourly samples: 50 between 00:00 and 05:59 UTC, 100 otherwise."""
    return [
        DataPoint(timestamp=T0 + h * HOUR_MS, value=50.0 if (h % 24) < 6 else 100.0)
        for h in range(days * 24)
    ]


class TestBuckets:
    def test_hour_buckets_are_utc(self):
        assert hour_bucket(T0) == "night"
        assert hour_bucket(T0 + 7 * HOUR_MS) == "morning"
        assert hour_bucket(T0 + 13 * HOUR_MS) == "afternoon"
        assert hour_bucket(T0 + 23 * HOUR_MS) == "evening"

    def test_day_and_week_buckets(self):
        assert day_bucket(T0) == "monday"
        assert day_bucket(T0 + 6 * DAY_MS) == "sunday"
        assert week_of_month_bucket(T0) == "week1"  # Feb 3
        assert week_of_month_bucket(T0 + 25 * DAY_MS) == "week4"  # Feb 28


class TestAnalyze:
    def test_detects_daily_pattern(self):
        analysis = SeasonalityAnalyzer().analyze(_day_night_series())

        assert analysis.has_seasonality
        assert analysis.dominant_period == "daily"
        assert [p.type for p in analysis.patterns] == ["daily"]
        assert analysis.confidence > 0.3

        adjustments = analysis.patterns[0].adjustments
        assert math.isclose(adjustments["night"], 50.0 / 87.5)
        assert math.isclose(adjustments["evening"], 100.0 / 87.5)

    def test_flat_series_has_no_seasonality(self):
        flat = [DataPoint(timestamp=T0 + h * HOUR_MS, value=100.0) for h in range(96)]

        analysis = SeasonalityAnalyzer().analyze(flat)

        assert not analysis.has_seasonality
        assert analysis.dominant_period == "none"

    def test_too_few_points(self):
        analysis = SeasonalityAnalyzer().analyze(_day_night_series()[:10])
        assert not analysis.has_seasonality

    def test_short_span_skips_daily(self):
        # 48 hours of data is below the 3 day span needed for a daily pattern
        analysis = SeasonalityAnalyzer().analyze(_day_night_series(days=2))
        assert not analysis.has_seasonality


class TestAdjustment:
    def test_disabled_config_is_neutral(self):
        analyzer = SeasonalityAnalyzer()

        assert analyzer.get_adjustment(T0, None) == 1.0
        assert analyzer.get_adjustment(T0, SeasonalityConfig()) == 1.0

    def test_factors_multiply_across_patterns(self):
        config = SeasonalityConfig(
            enabled=True,
            patterns=[
                SeasonalPattern(type="daily", adjustments={"night": 0.5}),
                SeasonalPattern(type="weekly", adjustments={"monday": 0.8}),
            ],
        )
        analyzer = SeasonalityAnalyzer()

        assert math.isclose(analyzer.get_adjustment(T0, config), 0.4)
        # missing bucket keys count as 1
        assert math.isclose(analyzer.get_adjustment(T0 + 12 * HOUR_MS, config), 0.8)

    def test_deseasonalize_and_reseasonalize(self):
        config = SeasonalityConfig(
            enabled=True, patterns=[SeasonalPattern(type="daily", adjustments={"night": 0.5})]
        )
        analyzer = SeasonalityAnalyzer()

        assert analyzer.deseasonalize(50.0, T0, config) == 100.0
        assert analyzer.reseasonalize(100.0, T0, config) == 50.0

    def test_zero_factor_leaves_value(self):
        config = SeasonalityConfig(
            enabled=True, patterns=[SeasonalPattern(type="daily", adjustments={"night": 0.0})]
        )
        assert SeasonalityAnalyzer().deseasonalize(7.0, T0, config) == 7.0


class TestCycles:
    def test_autocorrelation_needs_enough_points(self):
        assert SeasonalityAnalyzer().detect_autocorrelation(_day_night_series(1), max_lag=30) == []

    def test_dominant_cycle_of_daily_series(self):
        points = [
            DataPoint(timestamp=T0 + i * DAY_MS, value=100.0 if i % 7 < 5 else 40.0)
            for i in range(120)
        ]

        cycle = SeasonalityAnalyzer().find_dominant_cycle(points)

        assert cycle is not None
        assert cycle.type == "daily"
        assert cycle.period_ms == 7 * DAY_MS

    def test_holidays(self):
        analyzer = SeasonalityAnalyzer()
        christmas = 1735084800000  # 2024-12-25 00:00 UTC

        assert analyzer.is_holiday(christmas)
        assert analyzer.holiday_adjustment(christmas) == 0.5
        assert analyzer.holiday_adjustment(T0) == 1.0
