"""
Schema definitions for anomaly detection.

All anomaly outputs are deterministic and explainable. Each anomaly references
the observed value, the expected value taken from its baseline, the signed
deviation that triggered it and the severity breakdown behind its class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from testpulse.core.enums import (
    AlertLevel,
    AnomalyStatus,
    AnomalyType,
    BaselineMethod,
    Severity,
)
from testpulse.core.exceptions import EmptyBaselineInputError
from testpulse.data.schema import SeasonalityConfig


def new_anomaly_id() -> str:
    return f"anomaly-{uuid4()}"


class Baseline(BaseModel):
    """
    Statistical summary of "normal" for one metric.

    Fields:
    - mean: centre (median for the robust methods)
    - std: dispersion estimate, never negative
    - min/max: observed range (p5/p95 for the percentile method)
    - sample_count: points used after preprocessing, always >= 1
    - period: window label such as "7d", "4w" or "2m"
    - last_updated: epoch ms of the last rebuild
    - p5..p95: optional percentiles of the fitted values
    """

    mean: float
    std: float = Field(ge=0.0)
    min: float
    max: float
    sample_count: int = Field(ge=1)
    period: str
    last_updated: int
    p5: Optional[float] = None
    p25: Optional[float] = None
    p50: Optional[float] = None
    p75: Optional[float] = None
    p95: Optional[float] = None


class BaselineConfig(BaseModel):
    """How a baseline for one metric is built."""

    metric_name: str
    method: BaselineMethod = BaselineMethod.MOVING_AVERAGE
    window_size: int = Field(30, ge=1)
    exclude_anomalies: bool = True
    seasonality: SeasonalityConfig = Field(default_factory=SeasonalityConfig)


class BaselineRecord(BaseModel):
    """Persisted baseline together with the config that produced it."""

    metric_name: str
    baseline: Baseline
    config: BaselineConfig
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class BaselineResult:
    """
    Outcome of a baseline build: either a baseline or an empty-input error.

    Callers branch on ``ok``; ``unwrap()`` raises the stored error.
    """

    metric_name: str
    baseline: Optional[Baseline] = None
    error: Optional[EmptyBaselineInputError] = None

    @property
    def ok(self) -> bool:
        return self.baseline is not None

    def unwrap(self) -> Baseline:
        if self.baseline is None:
            raise self.error or EmptyBaselineInputError(self.metric_name)
        return self.baseline


class Suggestion(BaseModel):
    action: str
    priority: str = "medium"
    effort: str = "medium"


class RootCause(BaseModel):
    """
    Explanation attached to an anomaly by a root-cause analyzer.

    confidence is a percentage in [0, 100].
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    category: str
    description: str
    confidence: float = Field(ge=0.0, le=100.0)
    evidence: List[str] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)


class SeverityInput(BaseModel):
    """
    Inputs to the severity model.

    duration_ms, historical_frequency (0-1) and the affected/total case counts
    are optional; absent factors contribute nothing.
    """

    deviation: float
    anomaly_type: AnomalyType
    duration_ms: Optional[float] = None
    affected_cases: Optional[int] = None
    total_cases: Optional[int] = None
    is_regression: bool = False
    consecutive_failures: Optional[int] = None
    historical_frequency: Optional[float] = None


class SeverityFactor(BaseModel):
    name: str
    weight: float
    value: float
    contribution: float


class SeverityResult(BaseModel):
    severity: Severity
    score: float = Field(ge=0.0, le=100.0)
    factors: List[SeverityFactor] = Field(default_factory=list)
    recommendation: str = ""


class PrioritizedSeverity(SeverityResult):
    priority: float


class ImpactAssessment(BaseModel):
    scope: Severity
    affected_percentage: float
    estimated_impact: str
    urgency: str  # "low", "medium", "high" or "immediate"


class Anomaly(BaseModel):
    """
    A persisted anomaly.

    Fields:
    - id: "anomaly-<uuid>"; alert deduplication keys on its first two segments
    - status: changed only through explicit transitions; RESOLVED is terminal
    - deviation: signed primary deviation in algorithm units
    - root_causes: append-only explanations
    - severity_result: factor breakdown behind ``severity``
    """

    id: str = Field(default_factory=new_anomaly_id)
    type: AnomalyType
    severity: Severity
    status: AnomalyStatus = AnomalyStatus.NEW
    detected_at: int
    metric_name: str
    current_value: float
    expected_value: float
    deviation: float
    algorithm: Optional[str] = None
    case_id: Optional[str] = None
    case_name: Optional[str] = None
    description: str = ""
    root_causes: List[RootCause] = Field(default_factory=list)
    severity_result: Optional[SeverityResult] = None
    acknowledged_at: Optional[int] = None
    resolved_at: Optional[int] = None


class DetectionDetails(BaseModel):
    algorithm: str
    deviation: float = 0.0
    threshold: float = 0.0
    baseline: Optional[Baseline] = None


class DetectionResult(BaseModel):
    """
    Outcome of AnomalyDetector.detect.

    When details.algorithm is "insufficient_data" no algorithm ran and the
    other fields carry no meaning.
    """

    is_anomaly: bool
    anomaly: Optional[Anomaly] = None
    details: DetectionDetails

    @property
    def insufficient_data(self) -> bool:
        return self.details.algorithm == "insufficient_data"


class MetricSample(BaseModel):
    """One metric value submitted to batch or per-case detection."""

    name: str
    value: float
    case_id: Optional[str] = None
    case_name: Optional[str] = None
    history: Optional[List[float]] = None


class CaseDetectionResult(BaseModel):
    case_id: str
    anomalies: List[Anomaly] = Field(default_factory=list)
    overall_status: str = "normal"  # "normal", "warning" or "critical"


class BatchDetectionResult(BaseModel):
    results: List[DetectionResult] = Field(default_factory=list)
    overall_status: str = "normal"

    @property
    def anomalies(self) -> List[Anomaly]:
        return [r.anomaly for r in self.results if r.anomaly is not None]


class AnomalyStatistics(BaseModel):
    total: int = 0
    by_severity: Dict[str, int] = Field(default_factory=dict)
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_status: Dict[str, int] = Field(default_factory=dict)


class HealthScore(BaseModel):
    """
    Health score produced by an external scorer and consumed by the alert path.

    overall is in [0, 100]; higher is healthier.
    """

    overall: float = Field(ge=0.0, le=100.0)
    recommendations: List[str] = Field(default_factory=list)
    calculated_at: int
    components: Dict[str, float] = Field(default_factory=dict)


class AnomalyPoint(BaseModel):
    """A flagged position in a series scanned by a batch detector."""

    index: int
    value: float
    deviation: float
    timestamp: Optional[int] = None


class AnomalyAlert(BaseModel):
    """
    A rendered alert.

    Frozen: acknowledgement produces an updated copy through ``acknowledged_copy``
    and nothing else about an alert ever changes.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"alert-{uuid4()}")
    anomaly_id: str
    level: AlertLevel
    title: str
    message: str
    created_at: int
    acknowledged: bool = False
    acknowledged_at: Optional[int] = None

    def acknowledged_copy(self, now: int) -> "AnomalyAlert":
        if self.acknowledged:
            return self
        return self.model_copy(update={"acknowledged": True, "acknowledged_at": now})
