"""
Moving-average and Bollinger band detection.

A candidate value is compared against the trailing average of the history
and the moving standard deviation of the most recent window. Bollinger bands
wrap a simple moving average with a multiple of the moving standard
deviation; deviation is then reported as the distance past the nearer band
scaled by the band half-width.

Notes:
- Series shorter than the window use the whole-series mean and std at every
  position.
- Standard deviations are population estimates.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

from testpulse.data.schema import DataPoint

from ..schema import AnomalyPoint


@dataclass(frozen=True)
class MovingAverageResult:
    is_anomaly: bool
    current_value: float
    moving_average: float
    deviation: float
    percentage_deviation: float
    z_score: float


@dataclass(frozen=True)
class BollingerBands:
    upper: List[float]
    middle: List[float]
    lower: List[float]


@dataclass(frozen=True)
class BollingerResult:
    is_anomaly: bool
    upper: float
    middle: float
    lower: float
    deviation: float


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _pstdev(values: Sequence[float]) -> float:
    mean = _mean(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def calculate_sma(values: Sequence[float], window_size: int) -> List[float]:
    if not values:
        return []
    if len(values) < window_size:
        return [_mean(values)] * len(values)
    return [
        _mean(values[max(0, i - window_size + 1): i + 1]) for i in range(len(values))
    ]


def calculate_ema(values: Sequence[float], alpha: float = 0.2) -> List[float]:
    if not values:
        return []
    result = [values[0]]
    for value in values[1:]:
        result.append(alpha * value + (1 - alpha) * result[-1])
    return result


def calculate_moving_std(values: Sequence[float], window_size: int) -> List[float]:
    if not values:
        return []
    if len(values) < window_size:
        return [_pstdev(values)] * len(values)
    return [
        _pstdev(values[max(0, i - window_size + 1): i + 1]) for i in range(len(values))
    ]


def detect_moving_average_anomaly(
    value: float,
    history: Sequence[float],
    window_size: int = 10,
    threshold: float = 2.0,
    use_exponential: bool = False,
    alpha: float = 0.2,
) -> MovingAverageResult:
    """
    Compare value with the trailing average just before it.

    The average is taken from the series history + [value] at the position
    preceding value; the dispersion is the last moving std of the history.
    """
    if not history:
        return MovingAverageResult(False, value, value, 0.0, 0.0, 0.0)

    series = list(history) + [value]
    averages = (
        calculate_ema(series, alpha) if use_exponential else calculate_sma(series, window_size)
    )
    moving_average = averages[-2]
    std = calculate_moving_std(history, window_size)[-1]

    deviation = value - moving_average
    percentage = deviation / moving_average * 100 if moving_average != 0 else 0.0
    z = deviation / std if std != 0 else 0.0

    return MovingAverageResult(
        is_anomaly=abs(z) > threshold,
        current_value=value,
        moving_average=moving_average,
        deviation=deviation,
        percentage_deviation=percentage,
        z_score=z,
    )


def detect_moving_average_anomalies(
    points: Sequence[DataPoint],
    window_size: int = 10,
    threshold: float = 2.0,
    use_exponential: bool = False,
    alpha: float = 0.2,
) -> List[AnomalyPoint]:
    """Scan a series; each point is scored against the average and std ending one step earlier."""
    if len(points) < window_size:
        return []

    values = [p.value for p in points]
    averages = calculate_ema(values, alpha) if use_exponential else calculate_sma(values, window_size)
    stds = calculate_moving_std(values, window_size)

    anomalies = []
    for i in range(window_size, len(values)):
        deviation = values[i] - averages[i - 1]
        z = deviation / stds[i - 1] if stds[i - 1] != 0 else 0.0
        if abs(z) > threshold:
            anomalies.append(
                AnomalyPoint(index=i, value=values[i], deviation=z, timestamp=points[i].timestamp)
            )
    return anomalies


def calculate_bollinger_bands(
    values: Sequence[float], window_size: int = 20, multiplier: float = 2.0
) -> BollingerBands:
    middle = calculate_sma(values, window_size)
    stds = calculate_moving_std(values, window_size)
    return BollingerBands(
        upper=[m + multiplier * s for m, s in zip(middle, stds)],
        middle=middle,
        lower=[m - multiplier * s for m, s in zip(middle, stds)],
    )


def _band_deviation(value: float, upper: float, middle: float, lower: float) -> float:
    if value > upper:
        width = upper - middle
        return (value - upper) / width if width != 0 else value - upper
    if value < lower:
        width = middle - lower
        return (value - lower) / width if width != 0 else value - lower
    return 0.0


def detect_bollinger_anomaly(
    value: float, history: Sequence[float], window_size: int = 20, multiplier: float = 2.0
) -> BollingerResult:
    """Check value against the bands at the end of the history."""
    if not history:
        return BollingerResult(False, value, value, value, 0.0)

    bands = calculate_bollinger_bands(history, window_size, multiplier)
    upper, middle, lower = bands.upper[-1], bands.middle[-1], bands.lower[-1]
    return BollingerResult(
        is_anomaly=value > upper or value < lower,
        upper=upper,
        middle=middle,
        lower=lower,
        deviation=_band_deviation(value, upper, middle, lower),
    )


def detect_bollinger_band_anomalies(
    points: Sequence[DataPoint], window_size: int = 20, multiplier: float = 2.0
) -> List[AnomalyPoint]:
    values = [p.value for p in points]
    bands = calculate_bollinger_bands(values, window_size, multiplier)

    anomalies = []
    for i in range(window_size, len(values)):
        upper, middle, lower = bands.upper[i], bands.middle[i], bands.lower[i]
        if lower <= values[i] <= upper:
            continue
        anomalies.append(
            AnomalyPoint(
                index=i,
                value=values[i],
                deviation=_band_deviation(values[i], upper, middle, lower),
                timestamp=points[i].timestamp,
            )
        )
    return anomalies
