"""
Shared enumerations for the anomaly pipeline.

Kept in core so that configuration models can reference them without
importing the anomaly package.
"""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Severity levels for anomalies, ordered from least to most severe."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)


SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class AnomalyType(str, Enum):
    DURATION_SPIKE = "duration_spike"
    FAILURE_SPIKE = "failure_spike"
    FLAKY_PATTERN = "flaky_pattern"
    PERFORMANCE_DEGRADATION = "performance_degradation"
    SUCCESS_RATE_DROP = "success_rate_drop"
    PASS_RATE_DROP = "pass_rate_drop"
    RESOURCE_ANOMALY = "resource_anomaly"
    TREND_CHANGE = "trend_change"
    SEASONAL_DEVIATION = "seasonal_deviation"
    CONSECUTIVE_FAILURES = "consecutive_failures"
    FLAKY_DETECTED = "flaky_detected"


class AnomalyStatus(str, Enum):
    """Lifecycle of a persisted anomaly. RESOLVED is terminal."""

    NEW = "new"
    ACKNOWLEDGED = "acknowledged"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


class Algorithm(str, Enum):
    """
    Detection algorithms in fixed precedence order.

    Declaration order is used to break ties between votes of equal magnitude.
    """

    ZSCORE = "zscore"
    MODIFIED_ZSCORE = "modified_zscore"
    IQR = "iqr"
    MOVING_AVERAGE = "moving_average"
    BOLLINGER = "bollinger"


class Sensitivity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class BaselineMethod(str, Enum):
    MOVING_AVERAGE = "moving_average"
    EXPONENTIAL_SMOOTHING = "exponential_smoothing"
    PERCENTILE = "percentile"
    MEDIAN = "median"


class AlertLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"
