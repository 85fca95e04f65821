"""
Custom exceptions for TestPulse.

These exceptions provide clear error semantics across the pipeline.
Use them to distinguish caller mistakes (bad input, bad config, missing ids)
from backend failures (persistence) that the caller may want to retry.

Insufficient history is not an exception: the detector returns a result with
algorithm="insufficient_data" that callers must branch on.
"""


class TestPulseError(Exception):
    """Base exception for all TestPulse errors."""
    pass


class ConfigurationError(TestPulseError):
    """Raised when configuration is invalid or missing."""
    pass


class DataValidationError(TestPulseError):
    """Raised when input data fails validation."""
    pass


class AnomalyDetectionError(TestPulseError):
    """Base exception for anomaly detection failures."""
    pass


class EmptyBaselineInputError(AnomalyDetectionError, DataValidationError):
    """Raised when no valid points remain to build a baseline from."""

    def __init__(self, metric_name: str) -> None:
        super().__init__(f"No valid data points for baseline: {metric_name}")
        self.metric_name = metric_name


class PersistenceError(TestPulseError):
    """Raised by stores when the backing storage fails. Never swallowed by detection."""
    pass


class NotFoundError(TestPulseError):
    """Raised when an anomaly, baseline or alert id does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class InvalidStatusTransitionError(TestPulseError):
    """Raised when an anomaly status change is not allowed (e.g. leaving resolved)."""
    pass
