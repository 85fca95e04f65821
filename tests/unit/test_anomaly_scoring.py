"""
Unit tests for severity scoring.
"""

import pytest

from testpulse.anomaly.schema import Baseline, SeverityInput
from testpulse.anomaly.scoring import (
    SeverityEvaluator,
    consecutive_factor,
    deviation_factor,
    duration_factor,
    frequency_factor,
    impact_factor,
    overall_severity,
)
from testpulse.core.config import HOUR_MS, SeverityConfig
from testpulse.core.enums import AnomalyType, Severity


def _input(deviation, anomaly_type=AnomalyType.DURATION_SPIKE, **kwargs):
    return SeverityInput(deviation=deviation, anomaly_type=anomaly_type, **kwargs)


class TestFactors:
    def test_deviation_knees(self):
        assert deviation_factor(1.0) == 0.25
        assert deviation_factor(-2.0) == 0.5
        assert deviation_factor(3.0) == 0.75
        assert deviation_factor(4.0) == pytest.approx(0.9)
        assert deviation_factor(50.0) == 1.0

    def test_other_factors(self):
        assert duration_factor(HOUR_MS / 2) == 0.125
        assert duration_factor(1000 * HOUR_MS) == 1.0
        assert frequency_factor(0.25) == 0.5
        assert impact_factor(0, 0) == 0.0
        assert impact_factor(1, 100) == pytest.approx(0.05)
        assert consecutive_factor(10) == 1.0
        assert consecutive_factor(1000) == 1.0


class TestEvaluate:
    def test_deviation_only_is_low(self):
        result = SeverityEvaluator().evaluate(_input(5.0))

        assert result.severity == Severity.LOW
        assert result.score == pytest.approx(0.925 * 35)
        assert [f.name for f in result.factors] == ["deviation"]

    def test_type_multiplier_scales_subtotal(self):
        result = SeverityEvaluator().evaluate(_input(5.0, AnomalyType.FAILURE_SPIKE))

        assert result.score == pytest.approx(0.925 * 35 * 1.3)
        assert result.severity == Severity.MEDIUM
        assert result.factors[-1].name == "type_modifier"
        assert result.recommendation == "Notable deviation. Monitor for further changes."

    def test_score_monotonic_in_deviation(self):
        evaluator = SeverityEvaluator()
        scores = [evaluator.evaluate(_input(d / 2)).score for d in range(0, 21)]

        assert scores == sorted(scores)
        assert evaluator.evaluate(_input(5.0)).score >= evaluator.evaluate(_input(2.0)).score

    def test_all_factors_reach_critical(self):
        data = _input(
            4.0,
            duration_ms=24 * HOUR_MS,
            affected_cases=50,
            total_cases=100,
            is_regression=True,
        )

        result = SeverityEvaluator().evaluate(data)

        assert result.score == pytest.approx(31.5 + 19 + 28.5 + 15)
        assert result.severity == Severity.CRITICAL
        assert result.recommendation.startswith("Immediate investigation required")

    def test_score_is_clamped(self):
        data = _input(
            10.0,
            duration_ms=48 * HOUR_MS,
            affected_cases=100,
            total_cases=100,
            is_regression=True,
            consecutive_failures=10,
            historical_frequency=1.0,
        )

        assert SeverityEvaluator().evaluate(data).score == 100.0

    def test_single_failure_adds_no_consecutive_factor(self):
        result = SeverityEvaluator().evaluate(_input(1.0, consecutive_failures=1))
        assert "consecutive" not in [f.name for f in result.factors]

    def test_custom_cutoffs(self):
        config = SeverityConfig(medium_score=10.0)
        assert SeverityEvaluator(config).evaluate(_input(2.0)).severity == Severity.MEDIUM


class TestImpactAndPriority:
    def test_critical_regression_is_immediate(self):
        impact = SeverityEvaluator().assess_impact(
            _input(3.0, affected_cases=60, total_cases=100, is_regression=True)
        )

        assert impact.scope == Severity.CRITICAL
        assert impact.urgency == "immediate"
        assert impact.affected_percentage == 60.0
        assert impact.estimated_impact == (
            "severely impacting test execution time across 60.0% of test cases"
        )

    def test_long_failure_streak_is_high_urgency(self):
        impact = SeverityEvaluator().assess_impact(
            _input(3.0, AnomalyType.FAILURE_SPIKE, consecutive_failures=5)
        )

        assert impact.scope == Severity.LOW
        assert impact.urgency == "high"

    def test_priority(self):
        data = _input(
            3.0, affected_cases=50, total_cases=100, is_regression=True, historical_frequency=0.2
        )
        assert SeverityEvaluator().calculate_priority(Severity.HIGH, data) == pytest.approx(94.0)

    def test_evaluate_and_prioritize_sorts_descending(self):
        results = SeverityEvaluator().evaluate_and_prioritize(
            [
                _input(1.0),
                _input(
                    8.0,
                    duration_ms=24 * HOUR_MS,
                    affected_cases=80,
                    total_cases=100,
                    is_regression=True,
                ),
            ]
        )

        assert results[0].priority > results[1].priority
        assert results[0].severity == Severity.CRITICAL


class TestHelpers:
    def test_overall_and_compare(self):
        assert overall_severity(Severity.LOW, Severity.HIGH, Severity.MEDIUM) == Severity.HIGH
        assert SeverityEvaluator.compare_severity(Severity.HIGH, Severity.LOW) == 2
        assert SeverityEvaluator.compare_severity(Severity.LOW, Severity.LOW) == 0

    def test_severity_from_deviation(self):
        evaluator = SeverityEvaluator()
        baseline = Baseline(mean=0.0, std=2.0, min=0.0, max=0.0, sample_count=1, period="1d", last_updated=0)
        flat = baseline.model_copy(update={"std": 0.0})

        assert evaluator.severity_from_deviation(8.0, baseline) == Severity.CRITICAL
        assert evaluator.severity_from_deviation(-6.0, baseline) == Severity.HIGH
        assert evaluator.severity_from_deviation(5.0, baseline) == Severity.MEDIUM
        assert evaluator.severity_from_deviation(1.0, baseline) == Severity.LOW
        assert evaluator.severity_from_deviation(3.0, flat) == Severity.HIGH
