"""
Canonical metric sample schema for the anomaly pipeline.

This module defines the representation of raw metric samples and pass/fail
execution results as they enter the pipeline, plus the summaries produced by
preprocessing.

Design rationale:
- Timestamps are integer epoch milliseconds (UTC) everywhere
- Samples are immutable once produced
- Summaries are plain value objects with no behaviour
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DataPoint(BaseModel):
    """
    A single metric sample.

    Attributes:
        timestamp: Epoch milliseconds when the sample was taken
        value: Observed metric value
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(..., description="Epoch milliseconds (UTC)")
    value: float = Field(..., description="Observed metric value")


class ExecutionResult(BaseModel):
    """
    Outcome of a single test execution, used by pass/fail pattern detection.

    Attributes:
        timestamp: Epoch milliseconds of the execution
        passed: True when the run passed
        case_id: Optional test case identifier
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int
    passed: bool
    case_id: Optional[str] = None


class SeriesStats(BaseModel):
    """
    Moment and order statistics of a series.

    Notes:
        - std is the population standard deviation
        - q1/q3 are taken at index floor(n*0.25) / floor(n*0.75) of the sorted values
        - every field is 0 for an empty series
    """

    mean: float = 0.0
    std: float = 0.0
    min: float = 0.0
    max: float = 0.0
    median: float = 0.0
    q1: float = 0.0
    q3: float = 0.0


class PreprocessResult(BaseModel):
    """
    Output of DataPreprocessor.preprocess.

    Attributes:
        data: Cleaned points sorted by timestamp
        removed_outliers: Points dropped as outliers (and zeros, if enabled)
        filled_missing: Points synthesised to fill gaps
        stats: Statistics of the cleaned values
    """

    data: List[DataPoint]
    removed_outliers: int = 0
    filled_missing: int = 0
    stats: SeriesStats = Field(default_factory=SeriesStats)


class TrendResult(BaseModel):
    """Least-squares trend over sample index."""

    has_trend: bool
    slope: float
    r_squared: float
    direction: str  # "up", "down" or "flat"


class SeasonalPattern(BaseModel):
    """
    Multiplicative adjustment factors for one calendar cycle.

    Attributes:
        type: "daily", "weekly" or "monthly"
        adjustments: bucket key -> factor (bucket mean / overall mean)
    """

    type: str
    adjustments: Dict[str, float] = Field(default_factory=dict)


class SeasonalityConfig(BaseModel):
    """Seasonality applied to a baseline. Disabled means every factor is 1."""

    enabled: bool = False
    patterns: List[SeasonalPattern] = Field(default_factory=list)


class SeasonalAnalysis(BaseModel):
    """Result of SeasonalityAnalyzer.analyze."""

    has_seasonality: bool = False
    patterns: List[SeasonalPattern] = Field(default_factory=list)
    confidence: float = 0.0
    dominant_period: str = "none"


class CycleInfo(BaseModel):
    """Dominant cycle found through autocorrelation."""

    period_ms: float
    strength: float
    type: str
