"""
Severity scoring for anomaly candidates.

A weighted additive model over up to six factors, each mapped to [0, 1]
piecewise and scaled by its weight to points out of 100:

- deviation: |sigma| with knees at 2, 3 and 4
- duration: hours with knees at 1, 4 and 24
- frequency: sqrt of the historical recurrence rate
- impact: affected/total cases with knees at 5%, 20% and 50%
- regression: flat penalty
- consecutive: log10(n) failures, capped at 1

The per-type multiplier scales the subtotal, then the score is clamped to
[0, 100] and bucketed (critical/high/medium cut-offs from SeverityConfig).
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence

from testpulse.core.config import SeverityConfig
from testpulse.core.enums import SEVERITY_ORDER, AnomalyType, Severity

from .schema import (
    Baseline,
    ImpactAssessment,
    PrioritizedSeverity,
    SeverityFactor,
    SeverityInput,
    SeverityResult,
)

HOUR_MS = 60 * 60 * 1000
TYPE_MODIFIER = "type_modifier"

PRIORITY_BASE: Dict[Severity, float] = {
    Severity.LOW: 25.0,
    Severity.MEDIUM: 50.0,
    Severity.HIGH: 75.0,
    Severity.CRITICAL: 100.0,
}

RECOMMENDATIONS: Dict[Severity, Dict[str, str]] = {
    Severity.CRITICAL: {
        "deviation": "Immediate investigation required. Value significantly outside normal range.",
        "duration": "Long-standing critical issue. Escalate to team lead immediately.",
        "frequency": "Recurring critical issue. Root cause analysis mandatory.",
        "impact": "Wide-spread impact. Consider rollback or hotfix.",
        "regression": "Critical regression detected. Block deployments until resolved.",
        "consecutive": "Extended failure sequence. Check for systemic issues.",
        "default": "Critical anomaly detected. Immediate action required.",
    },
    Severity.HIGH: {
        "deviation": "Significant deviation from baseline. Investigate within 24 hours.",
        "duration": "Issue persisting for extended period. Schedule investigation.",
        "frequency": "Frequently occurring issue. Add to sprint backlog.",
        "impact": "Affecting significant portion of tests. Prioritize investigation.",
        "regression": "Regression detected. Review recent changes.",
        "consecutive": "Multiple consecutive failures. Check test stability.",
        "default": "High severity anomaly. Plan investigation soon.",
    },
    Severity.MEDIUM: {
        "deviation": "Notable deviation. Monitor for further changes.",
        "duration": "Issue ongoing. Review if time permits.",
        "frequency": "Occasional issue. Consider adding to backlog.",
        "impact": "Moderate impact. Investigate when convenient.",
        "regression": "Minor regression. Review when time permits.",
        "consecutive": "Some consecutive failures. Watch for patterns.",
        "default": "Medium severity anomaly. Monitor and review.",
    },
    Severity.LOW: {
        "deviation": "Minor deviation within acceptable range. No action needed.",
        "duration": "Short-lived variation. Continue monitoring.",
        "frequency": "Rare occurrence. No immediate action needed.",
        "impact": "Limited impact. Monitor passively.",
        "regression": "Minimal regression. Continue monitoring.",
        "consecutive": "Isolated failures. Normal variation.",
        "default": "Low severity anomaly. Continue normal monitoring.",
    },
}

TYPE_DESCRIPTIONS: Dict[AnomalyType, str] = {
    AnomalyType.DURATION_SPIKE: "test execution time",
    AnomalyType.FAILURE_SPIKE: "test reliability",
    AnomalyType.FLAKY_PATTERN: "test determinism",
    AnomalyType.PERFORMANCE_DEGRADATION: "system performance",
    AnomalyType.SUCCESS_RATE_DROP: "overall test quality",
    AnomalyType.PASS_RATE_DROP: "overall test quality",
    AnomalyType.RESOURCE_ANOMALY: "resource utilization",
    AnomalyType.TREND_CHANGE: "quality trajectory",
    AnomalyType.SEASONAL_DEVIATION: "expected patterns",
    AnomalyType.CONSECUTIVE_FAILURES: "test reliability",
    AnomalyType.FLAKY_DETECTED: "test determinism",
}

SCOPE_DESCRIPTIONS: Dict[Severity, str] = {
    Severity.CRITICAL: "severely impacting",
    Severity.HIGH: "significantly affecting",
    Severity.MEDIUM: "moderately affecting",
    Severity.LOW: "minimally affecting",
}


def deviation_factor(deviation: float) -> float:
    d = abs(deviation)
    if d < 2:
        return d / 4
    if d < 3:
        return 0.5 + (d - 2) * 0.25
    if d < 4:
        return 0.75 + (d - 3) * 0.15
    return min(1.0, 0.9 + (d - 4) * 0.025)


def duration_factor(duration_ms: float) -> float:
    hours = duration_ms / HOUR_MS
    if hours < 1:
        return hours * 0.25
    if hours < 4:
        return 0.25 + (hours - 1) * 0.167
    if hours < 24:
        return 0.75 + (hours - 4) * 0.0125
    return min(1.0, 0.95 + (hours - 24) * 0.001)


def frequency_factor(frequency: float) -> float:
    return math.sqrt(max(frequency, 0.0))


def impact_factor(affected: int, total: int) -> float:
    if total == 0:
        return 0.0
    pct = affected / total
    if pct < 0.05:
        return pct * 5
    if pct < 0.2:
        return 0.25 + (pct - 0.05) * 3.33
    if pct < 0.5:
        return 0.75 + (pct - 0.2) * 0.67
    return min(1.0, 0.95 + (pct - 0.5) * 0.1)


def consecutive_factor(consecutive: int) -> float:
    return min(1.0, math.log10(consecutive))


def _affected_ratio(data: SeverityInput) -> Optional[float]:
    if data.affected_cases is None or data.total_cases is None:
        return None
    return data.affected_cases / max(data.total_cases, 1)


def overall_severity(*severities: Severity) -> Severity:
    """Most severe of the given severities."""
    highest_index = max(SEVERITY_ORDER.index(s) for s in severities)
    return SEVERITY_ORDER[highest_index]


class SeverityEvaluator:
    """Scores SeverityInput candidates under a SeverityConfig policy."""

    def __init__(self, config: Optional[SeverityConfig] = None) -> None:
        self.config = config or SeverityConfig()

    def evaluate(self, data: SeverityInput) -> SeverityResult:
        factors = self.calculate_factors(data)
        score = self.calculate_score(factors)
        severity = self.score_to_severity(score)
        return SeverityResult(
            severity=severity,
            score=score,
            factors=factors,
            recommendation=self.recommendation(severity, factors),
        )

    def calculate_factors(self, data: SeverityInput) -> List[SeverityFactor]:
        weights = self.config.weights
        factors = [
            SeverityFactor(
                name="deviation",
                weight=weights.deviation,
                value=abs(data.deviation),
                contribution=deviation_factor(data.deviation) * weights.deviation * 100,
            )
        ]

        if data.duration_ms is not None:
            factors.append(
                SeverityFactor(
                    name="duration",
                    weight=weights.duration,
                    value=data.duration_ms,
                    contribution=duration_factor(data.duration_ms) * weights.duration * 100,
                )
            )

        if data.historical_frequency is not None:
            factors.append(
                SeverityFactor(
                    name="frequency",
                    weight=weights.frequency,
                    value=data.historical_frequency,
                    contribution=frequency_factor(data.historical_frequency)
                    * weights.frequency
                    * 100,
                )
            )

        ratio = _affected_ratio(data)
        if ratio is not None:
            factors.append(
                SeverityFactor(
                    name="impact",
                    weight=weights.impact,
                    value=ratio,
                    contribution=impact_factor(data.affected_cases, data.total_cases)
                    * weights.impact
                    * 100,
                )
            )

        if data.is_regression:
            factors.append(
                SeverityFactor(
                    name="regression",
                    weight=self.config.regression_penalty / 100,
                    value=1.0,
                    contribution=self.config.regression_penalty,
                )
            )

        if data.consecutive_failures is not None and data.consecutive_failures > 1:
            factors.append(
                SeverityFactor(
                    name="consecutive",
                    weight=self.config.consecutive_bonus / 100,
                    value=float(data.consecutive_failures),
                    contribution=consecutive_factor(data.consecutive_failures)
                    * self.config.consecutive_bonus,
                )
            )

        multiplier = self.type_multiplier(data.anomaly_type)
        if multiplier != 1.0:
            factors.append(
                SeverityFactor(name=TYPE_MODIFIER, weight=0.0, value=multiplier, contribution=0.0)
            )

        return factors

    def type_multiplier(self, anomaly_type: AnomalyType) -> float:
        return self.config.type_multipliers.get(anomaly_type.value, 1.0)

    def calculate_score(self, factors: Sequence[SeverityFactor]) -> float:
        subtotal = sum(f.contribution for f in factors if f.name != TYPE_MODIFIER)
        for factor in factors:
            if factor.name == TYPE_MODIFIER:
                subtotal *= factor.value
        return min(100.0, max(0.0, subtotal))

    def score_to_severity(self, score: float) -> Severity:
        if score >= self.config.critical_score:
            return Severity.CRITICAL
        if score >= self.config.high_score:
            return Severity.HIGH
        if score >= self.config.medium_score:
            return Severity.MEDIUM
        return Severity.LOW

    def recommendation(self, severity: Severity, factors: Sequence[SeverityFactor]) -> str:
        """Text keyed by the factor with the largest contribution."""
        contributing = [f for f in factors if f.contribution > 0]
        primary = max(contributing, key=lambda f: f.contribution).name if contributing else "deviation"
        table = RECOMMENDATIONS[severity]
        return table.get(primary, table["default"])

    def assess_impact(self, data: SeverityInput) -> ImpactAssessment:
        """
        Scope from the affected percentage (5/20/50% knees) and urgency.

        Urgency is "immediate" only for a critical-scope regression.
        """
        ratio = _affected_ratio(data)
        pct = ratio * 100 if ratio is not None else 0.0

        if pct >= 50:
            scope = Severity.CRITICAL
        elif pct >= 20:
            scope = Severity.HIGH
        elif pct >= 5:
            scope = Severity.MEDIUM
        else:
            scope = Severity.LOW

        consecutive = data.consecutive_failures or 0
        if data.is_regression and scope == Severity.CRITICAL:
            urgency = "immediate"
        elif scope == Severity.CRITICAL or consecutive >= 5:
            urgency = "high"
        elif scope == Severity.HIGH or data.is_regression:
            urgency = "medium"
        else:
            urgency = "low"

        description = (
            f"{SCOPE_DESCRIPTIONS[scope]} {TYPE_DESCRIPTIONS[data.anomaly_type]}"
            f" across {pct:.1f}% of test cases"
        )
        return ImpactAssessment(
            scope=scope,
            affected_percentage=pct,
            estimated_impact=description,
            urgency=urgency,
        )

    def calculate_priority(self, severity: Severity, data: SeverityInput) -> float:
        """Sortable queue priority; higher first."""
        priority = PRIORITY_BASE[severity]
        if data.is_regression:
            priority += 10
        ratio = _affected_ratio(data)
        if ratio is not None:
            priority += ratio * 20
        if data.historical_frequency is not None:
            priority -= data.historical_frequency * 5
        return priority

    def evaluate_and_prioritize(self, inputs: Sequence[SeverityInput]) -> List[PrioritizedSeverity]:
        results = []
        for data in inputs:
            result = self.evaluate(data)
            results.append(
                PrioritizedSeverity(
                    **result.model_dump(),
                    priority=self.calculate_priority(result.severity, data),
                )
            )
        return sorted(results, key=lambda r: r.priority, reverse=True)

    @staticmethod
    def compare_severity(a: Severity, b: Severity) -> int:
        return a.rank - b.rank

    def severity_from_deviation(self, deviation: float, baseline: Baseline) -> Severity:
        """Bucket a raw deviation by how many baseline stds it spans."""
        d = abs(deviation)
        normalized = d / baseline.std if baseline.std != 0 else d
        if normalized >= self.config.critical_sigma:
            return Severity.CRITICAL
        if normalized >= self.config.high_sigma:
            return Severity.HIGH
        if normalized >= self.config.medium_sigma:
            return Severity.MEDIUM
        return Severity.LOW
