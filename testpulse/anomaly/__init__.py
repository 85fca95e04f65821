"""
Anomaly module: baselines, ensemble detection and severity scoring.

Implements deterministic baselines, detectors, scoring, and persisted anomalies.
"""

from .baselines import BaselineBuilder, adjust_baseline, period_label
from .detectors import (
    DETECTOR_REGISTRY,
    BollingerDetector,
    DetectionContext,
    Detector,
    IQRDetector,
    ModifiedZScoreDetector,
    MovingAverageDetector,
    Verdict,
    ZScoreDetector,
    build_detectors,
    select_primary,
)
from .engine import AnomalyDetector, RootCauseAnalyzer, classify_anomaly, describe_anomaly
from .schema import (
    Anomaly,
    AnomalyAlert,
    AnomalyStatistics,
    Baseline,
    BaselineConfig,
    BaselineRecord,
    BaselineResult,
    BatchDetectionResult,
    CaseDetectionResult,
    DetectionDetails,
    DetectionResult,
    HealthScore,
    ImpactAssessment,
    MetricSample,
    PrioritizedSeverity,
    RootCause,
    SeverityFactor,
    SeverityInput,
    SeverityResult,
    Suggestion,
)
from .scoring import SeverityEvaluator, overall_severity
from .storage import AnomalyStore, InMemoryAnomalyStore

__all__ = [
	"AnomalyDetector",
	"RootCauseAnalyzer",
	"classify_anomaly",
	"describe_anomaly",
	"BaselineBuilder",
	"adjust_baseline",
	"period_label",
	"Detector",
	"DetectionContext",
	"Verdict",
	"ZScoreDetector",
	"ModifiedZScoreDetector",
	"IQRDetector",
	"MovingAverageDetector",
	"BollingerDetector",
	"DETECTOR_REGISTRY",
	"build_detectors",
	"select_primary",
	"SeverityEvaluator",
	"overall_severity",
	"AnomalyStore",
	"InMemoryAnomalyStore",
	"Anomaly",
	"AnomalyAlert",
	"AnomalyStatistics",
	"Baseline",
	"BaselineConfig",
	"BaselineRecord",
	"BaselineResult",
	"BatchDetectionResult",
	"CaseDetectionResult",
	"DetectionDetails",
	"DetectionResult",
	"HealthScore",
	"ImpactAssessment",
	"MetricSample",
	"PrioritizedSeverity",
	"RootCause",
	"SeverityFactor",
	"SeverityInput",
	"SeverityResult",
	"Suggestion",
]
