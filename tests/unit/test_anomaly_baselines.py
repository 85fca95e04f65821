"""
Unit tests for baseline construction.
"""

from math import isclose, sqrt

import pytest

from testpulse.anomaly.baselines import BaselineBuilder, adjust_baseline, period_label
from testpulse.anomaly.schema import BaselineConfig
from testpulse.core.config import DAY_MS, HOUR_MS
from testpulse.core.enums import BaselineMethod
from testpulse.core.exceptions import EmptyBaselineInputError, NotFoundError
from testpulse.data.schema import DataPoint, SeasonalityConfig, SeasonalPattern

from conftest import T0


def _points(values, step=1000):
    return [DataPoint(timestamp=T0 + i * step, value=v) for i, v in enumerate(values)]


def _config(method, **kwargs):
    return BaselineConfig(metric_name="ignored", method=method, exclude_anomalies=False, **kwargs)


@pytest.fixture
def builder(store, clock):
    return BaselineBuilder(store, clock=clock)


def test_period_label():
    assert period_label(7) == "7d"
    assert period_label(14) == "2w"
    assert period_label(30) == "4w"
    assert period_label(90) == "3m"


def test_moving_average_uses_last_window(builder, hourly_points):
    result = builder.build("suite.duration", hourly_points)

    assert result.ok
    baseline = result.baseline
    assert isclose(baseline.mean, 100.0)
    assert isclose(baseline.std, sqrt(2.0))
    assert baseline.min == 98.0
    assert baseline.max == 102.0
    assert baseline.sample_count == 48
    assert baseline.period == "4w"
    assert baseline.last_updated == T0
    assert baseline.p50 == 100.0


def test_exponential_smoothing(builder):
    result = builder.build(
        "m", _points([10.0, 10.0, 10.0, 20.0]), _config(BaselineMethod.EXPONENTIAL_SMOOTHING)
    )

    # alpha 0.3: level 10, 10, 10, 13
    assert isclose(result.baseline.mean, 13.0)
    assert result.baseline.std > 0
    assert result.baseline.max == 20.0


def test_percentile_method(builder):
    result = builder.build("m", _points([float(v) for v in range(1, 21)]), _config(BaselineMethod.PERCENTILE))

    baseline = result.baseline
    assert baseline.mean == 10.5
    assert isclose(baseline.std, 10 / 1.35)
    assert baseline.min == 2.0
    assert baseline.max == 20.0


def test_median_method_resists_outlier(builder):
    values = [float(v) for v in range(1, 10)] + [100.0]

    result = builder.build("m", _points(values), _config(BaselineMethod.MEDIAN))

    assert result.baseline.mean == 5.5
    assert isclose(result.baseline.std, 2.5 * 1.4826)
    assert result.baseline.max == 100.0


def test_empty_input_returns_error(builder, store):
    result = builder.build("m", [])

    assert not result.ok
    assert isinstance(result.error, EmptyBaselineInputError)
    assert store.get_baseline("m") is None
    with pytest.raises(EmptyBaselineInputError):
        result.unwrap()


def test_seasonal_baseline_is_readjusted(builder):
    seasonality = SeasonalityConfig(
        enabled=True, patterns=[SeasonalPattern(type="daily", adjustments={"night": 0.5})]
    )
    night = _points([50.0] * 10, step=60_000)

    builder.build("m", night, _config(BaselineMethod.MOVING_AVERAGE, seasonality=seasonality))

    assert builder.get_baseline("m").mean == 100.0
    assert builder.get_expected_value("m", T0) == 50.0
    assert builder.get_expected_value("m", T0 + 12 * HOUR_MS) == 100.0


def test_adjust_baseline_scales_every_field(steady_baseline):
    adjusted = adjust_baseline(steady_baseline, 0.5)

    assert adjusted.mean == 47.5
    assert adjusted.std == 1.0
    assert adjusted.min == 45.0
    assert adjusted.max == 49.5
    assert adjust_baseline(steady_baseline, 1.0) is steady_baseline


def test_expected_range(builder, hourly_points):
    builder.build("m", hourly_points)

    low, high = builder.get_expected_range("m", T0, sigmas=2.0)
    assert isclose(low, 100.0 - 2 * sqrt(2.0))
    assert isclose(high, 100.0 + 2 * sqrt(2.0))
    assert builder.get_expected_range("missing", T0) is None


def test_update_requires_existing(builder, hourly_points):
    with pytest.raises(NotFoundError):
        builder.update("missing", hourly_points)


def test_update_preserves_created_at(builder, clock, hourly_points):
    builder.build("m", hourly_points)
    clock.advance(HOUR_MS)

    builder.update("m", _points([200.0] * 20))

    record = builder.get_record("m")
    assert record.created_at == T0
    assert record.updated_at == T0 + HOUR_MS
    assert record.baseline.mean == 200.0


def test_needs_update(builder, clock, hourly_points):
    assert builder.needs_update("m")

    builder.build("m", hourly_points)
    assert not builder.needs_update("m")

    clock.advance(DAY_MS + 1)
    assert builder.needs_update("m")
    assert not builder.needs_update("m", max_age_ms=2 * DAY_MS)


def test_build_many_isolates_empty_series(builder, hourly_points):
    results = builder.build_many({"a": hourly_points, "b": []})

    assert results["a"].ok
    assert not results["b"].ok
    assert [r.metric_name for r in builder.get_all_baselines()] == ["a"]


def test_delete_and_clear(builder, hourly_points):
    builder.build("a", hourly_points)
    builder.build("b", hourly_points)

    assert builder.delete_baseline("a")
    assert not builder.delete_baseline("a")

    builder.clear_all_baselines()
    assert builder.get_all_baselines() == []
