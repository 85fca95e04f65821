"""
Z-score and modified (MAD-based) z-score detection.

The plain z-score compares a value against a baseline mean and standard
deviation. The modified z-score uses the median and the median absolute
deviation of a raw history, which keeps a handful of extreme points from
inflating the dispersion estimate.
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import List, Optional, Sequence

from testpulse.data.preprocessor import calculate_zscore

from ..schema import AnomalyPoint, Baseline

MODIFIED_ZSCORE_CONSTANT = 0.6745


@dataclass(frozen=True)
class ZScoreResult:
    is_anomaly: bool
    z_score: float
    threshold: float


@dataclass(frozen=True)
class MadStats:
    median: float
    mad: float


def detect_zscore_anomaly(
    value: float, baseline: Baseline, threshold: float = 3.0
) -> ZScoreResult:
    """Flag value when |z| against the baseline exceeds threshold."""
    z = calculate_zscore(value, baseline.mean, baseline.std)
    return ZScoreResult(is_anomaly=abs(z) > threshold, z_score=z, threshold=threshold)


def detect_zscore_anomalies(
    values: Sequence[float],
    baseline: Baseline,
    threshold: float = 3.0,
    timestamps: Optional[Sequence[int]] = None,
) -> List[AnomalyPoint]:
    anomalies = []
    for index, value in enumerate(values):
        result = detect_zscore_anomaly(value, baseline, threshold)
        if result.is_anomaly:
            anomalies.append(
                AnomalyPoint(
                    index=index,
                    value=value,
                    deviation=result.z_score,
                    timestamp=timestamps[index] if timestamps else None,
                )
            )
    return anomalies


def calculate_mad(values: Sequence[float]) -> MadStats:
    """Median and median absolute deviation; both 0 for empty input."""
    if not values:
        return MadStats(median=0.0, mad=0.0)
    median = statistics.median(values)
    mad = statistics.median(abs(v - median) for v in values)
    return MadStats(median=median, mad=mad)


def calculate_modified_zscore(value: float, median: float, mad: float) -> float:
    """0.6745 * (value - median) / MAD, or 0 when MAD is 0."""
    if mad == 0:
        return 0.0
    return MODIFIED_ZSCORE_CONSTANT * (value - median) / mad


def detect_modified_zscore_anomaly(
    value: float, history: Sequence[float], threshold: float = 3.5
) -> ZScoreResult:
    stats = calculate_mad(history)
    z = calculate_modified_zscore(value, stats.median, stats.mad)
    return ZScoreResult(is_anomaly=abs(z) > threshold, z_score=z, threshold=threshold)
