"""
Interquartile-range (Tukey fence) detection.

Quartiles are read from the sorted history at floor(n*0.25) and
floor(n*0.75). A value outside [Q1 - k*IQR, Q3 + k*IQR] is anomalous and its
deviation is the signed distance past the nearer fence in IQR units (raw
distance when the IQR is 0).
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..schema import AnomalyPoint


@dataclass(frozen=True)
class IQRStats:
    q1: float
    q2: float
    q3: float
    iqr: float


@dataclass(frozen=True)
class IQRResult:
    is_anomaly: bool
    is_high: bool
    is_low: bool
    lower_bound: float
    upper_bound: float
    deviation: float


def calculate_iqr_stats(values: Sequence[float]) -> IQRStats:
    if not values:
        return IQRStats(q1=0.0, q2=0.0, q3=0.0, iqr=0.0)
    ordered = sorted(values)
    n = len(ordered)
    q1 = ordered[int(n * 0.25)]
    q3 = ordered[int(n * 0.75)]
    return IQRStats(q1=q1, q2=statistics.median(ordered), q3=q3, iqr=q3 - q1)


def _check(value: float, stats: IQRStats, multiplier: float) -> IQRResult:
    lower = stats.q1 - multiplier * stats.iqr
    upper = stats.q3 + multiplier * stats.iqr
    is_high = value > upper
    is_low = value < lower

    if is_high:
        distance = value - upper
    elif is_low:
        distance = value - lower
    else:
        distance = 0.0
    deviation = distance / stats.iqr if stats.iqr != 0 else distance

    return IQRResult(
        is_anomaly=is_high or is_low,
        is_high=is_high,
        is_low=is_low,
        lower_bound=lower,
        upper_bound=upper,
        deviation=deviation,
    )


def detect_iqr_anomaly(
    value: float, history: Sequence[float], multiplier: float = 1.5
) -> IQRResult:
    if not history:
        return IQRResult(False, False, False, value, value, 0.0)
    return _check(value, calculate_iqr_stats(history), multiplier)


def detect_iqr_anomalies(
    values: Sequence[float],
    multiplier: float = 1.5,
    timestamps: Optional[Sequence[int]] = None,
) -> List[AnomalyPoint]:
    """Flag every value outside the fences computed from the whole series."""
    if len(values) < 4:
        return []
    stats = calculate_iqr_stats(values)
    anomalies = []
    for index, value in enumerate(values):
        result = _check(value, stats, multiplier)
        if result.is_anomaly:
            anomalies.append(
                AnomalyPoint(
                    index=index,
                    value=value,
                    deviation=result.deviation,
                    timestamp=timestamps[index] if timestamps else None,
                )
            )
    return anomalies


def get_anomaly_percentage(values: Sequence[float], multiplier: float = 1.5) -> float:
    """Share of values outside the fences, as a percentage."""
    if not values:
        return 0.0
    return len(detect_iqr_anomalies(values, multiplier)) / len(values) * 100
