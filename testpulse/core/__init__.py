"""
Core module: Configuration, logging, time sources and exception handling.
"""

from .clock import Clock, ManualClock, system_clock
from .config import (
    AlertConfig,
    BaselineSettings,
    Config,
    DetectionConfig,
    DetectionThresholds,
    PreprocessConfig,
    SeverityConfig,
    SeverityWeights,
)
from .enums import (
    AlertLevel,
    Algorithm,
    AnomalyStatus,
    AnomalyType,
    BaselineMethod,
    Sensitivity,
    Severity,
)
from .exceptions import (
    AnomalyDetectionError,
    ConfigurationError,
    DataValidationError,
    EmptyBaselineInputError,
    InvalidStatusTransitionError,
    NotFoundError,
    PersistenceError,
    TestPulseError,
)
from .logging_config import setup_logging

__all__ = [
    "Clock",
    "ManualClock",
    "system_clock",
    "Config",
    "PreprocessConfig",
    "BaselineSettings",
    "DetectionConfig",
    "DetectionThresholds",
    "SeverityConfig",
    "SeverityWeights",
    "AlertConfig",
    "AlertLevel",
    "Algorithm",
    "AnomalyStatus",
    "AnomalyType",
    "BaselineMethod",
    "Sensitivity",
    "Severity",
    "TestPulseError",
    "AnomalyDetectionError",
    "DataValidationError",
    "ConfigurationError",
    "EmptyBaselineInputError",
    "PersistenceError",
    "NotFoundError",
    "InvalidStatusTransitionError",
    "setup_logging",
]
