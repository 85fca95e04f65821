"""
Preprocessing and basic statistics for metric series.

Cleans raw DataPoint series before baseline construction: sorting, zero
removal, z-score outlier trimming, gap filling and optional normalisation.
Also provides trend estimation and time-bucket aggregation.

Design:
- All functions are pure; DataPreprocessor holds only its config
- Standard deviation is always the population estimator
- Quartiles use the floor-index convention (sorted[floor(n*q)])
- Aggregation is delegated to pandas group-by
"""

import logging
import math
import statistics
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from testpulse.core.config import PreprocessConfig
from testpulse.core.exceptions import DataValidationError
from testpulse.data.schema import DataPoint, PreprocessResult, SeriesStats, TrendResult

logger = logging.getLogger(__name__)

# Gap filling is skipped when the widest gap exceeds this many typical intervals.
MAX_GAP_RATIO = 100
# A gap must exceed this many typical intervals before points are synthesised.
GAP_FILL_RATIO = 1.5

AGGREGATION_METHODS = ("mean", "sum", "max", "min", "last")


def calculate_stats(values: Sequence[float]) -> SeriesStats:
    """
    Compute moment and order statistics of a series.

    Args:
        values: Raw values (any order)

    Returns:
        SeriesStats; all zero when values is empty
    """
    if not values:
        return SeriesStats()

    ordered = sorted(values)
    n = len(ordered)
    mean = sum(ordered) / n
    std = math.sqrt(sum((v - mean) ** 2 for v in ordered) / n)

    return SeriesStats(
        mean=mean,
        std=std,
        min=ordered[0],
        max=ordered[-1],
        median=statistics.median(ordered),
        q1=ordered[int(n * 0.25)],
        q3=ordered[int(n * 0.75)],
    )


def calculate_percentile(values: Sequence[float], percentile: float) -> float:
    """
    Floor-index percentile (0-100) of the values; 0.0 for empty input.
    """
    if not values:
        return 0.0
    ordered = sorted(values)
    index = int(len(ordered) * percentile / 100.0)
    return ordered[min(index, len(ordered) - 1)]


def calculate_zscore(value: float, mean: float, std: float) -> float:
    """Standard score of value; 0.0 when std is 0."""
    if std == 0:
        return 0.0
    return (value - mean) / std


def remove_outliers(
    points: Sequence[DataPoint], threshold: float = 3.0
) -> Tuple[List[DataPoint], int]:
    """
    Drop points whose |z| exceeds threshold.

    Series shorter than 3 points are returned unchanged.
    """
    if len(points) < 3:
        return list(points), 0

    stats = calculate_stats([p.value for p in points])
    kept = [
        p for p in points
        if abs(calculate_zscore(p.value, stats.mean, stats.std)) <= threshold
    ]
    return kept, len(points) - len(kept)


def remove_outliers_iqr(
    points: Sequence[DataPoint], multiplier: float = 1.5
) -> Tuple[List[DataPoint], int]:
    """
    Drop points outside [Q1 - k*IQR, Q3 + k*IQR].

    Series shorter than 4 points are returned unchanged.
    """
    if len(points) < 4:
        return list(points), 0

    stats = calculate_stats([p.value for p in points])
    iqr = stats.q3 - stats.q1
    lower = stats.q1 - multiplier * iqr
    upper = stats.q3 + multiplier * iqr
    kept = [p for p in points if lower <= p.value <= upper]
    return kept, len(points) - len(kept)


def fill_missing_values(
    points: Sequence[DataPoint], method: str = "linear"
) -> Tuple[List[DataPoint], int]:
    """
    Synthesise points inside gaps of a time-sorted series.

    The median spacing between consecutive points is the typical interval.
    A gap wider than 1.5 typical intervals receives round(gap/interval) - 1
    evenly spaced points. Filling is skipped entirely when the typical
    interval is not positive or the widest gap exceeds 100 intervals (the
    series is too irregular to interpolate).

    Args:
        points: Points sorted by timestamp
        method: "linear", "previous" or "mean"

    Returns:
        (filled series, number of synthesised points)
    """
    if method not in ("linear", "previous", "mean"):
        raise DataValidationError(f"Unknown fill method: {method}")
    if len(points) < 2:
        return list(points), 0

    intervals = sorted(
        points[i].timestamp - points[i - 1].timestamp for i in range(1, len(points))
    )
    typical = intervals[len(intervals) // 2]
    if typical <= 0 or intervals[-1] / typical > MAX_GAP_RATIO:
        return list(points), 0

    mean_value = sum(p.value for p in points) / len(points)
    result: List[DataPoint] = []
    filled = 0

    for current, following in zip(points, points[1:]):
        result.append(current)
        gap = following.timestamp - current.timestamp
        expected = math.floor(gap / typical + 0.5) - 1
        if expected <= 0 or gap <= typical * GAP_FILL_RATIO:
            continue
        for j in range(1, expected + 1):
            fraction = j / (expected + 1)
            if method == "linear":
                value = current.value + (following.value - current.value) * fraction
            elif method == "previous":
                value = current.value
            else:
                value = mean_value
            result.append(
                DataPoint(timestamp=current.timestamp + round(gap * fraction), value=value)
            )
            filled += 1

    result.append(points[-1])
    return result, filled


def normalize(points: Sequence[DataPoint], method: str = "zscore") -> List[DataPoint]:
    """
    Rescale values with z-score or min-max normalisation.

    A zero spread maps every value to 0.
    """
    if not points:
        return []
    stats = calculate_stats([p.value for p in points])

    if method == "zscore":
        def scale(v: float) -> float:
            return 0.0 if stats.std == 0 else (v - stats.mean) / stats.std
    elif method == "minmax":
        spread = stats.max - stats.min

        def scale(v: float) -> float:
            return 0.0 if spread == 0 else (v - stats.min) / spread
    else:
        raise DataValidationError(f"Unknown normalize method: {method}")

    return [DataPoint(timestamp=p.timestamp, value=scale(p.value)) for p in points]


def denormalize(value: float, original: SeriesStats, method: str = "zscore") -> float:
    """Invert normalize() for a single value given the original series stats."""
    if method == "zscore":
        return value * original.std + original.mean
    if method == "minmax":
        return value * (original.max - original.min) + original.min
    raise DataValidationError(f"Unknown normalize method: {method}")


def smooth(points: Sequence[DataPoint], window_size: int = 3) -> List[DataPoint]:
    """Centred simple moving average; series shorter than the window are unchanged."""
    if len(points) < window_size:
        return list(points)

    half = window_size // 2
    smoothed = []
    for i, point in enumerate(points):
        window = points[max(0, i - half): min(len(points), i + half + 1)]
        avg = sum(p.value for p in window) / len(window)
        smoothed.append(DataPoint(timestamp=point.timestamp, value=avg))
    return smoothed


def detect_trend(points: Sequence[DataPoint]) -> TrendResult:
    """
    Least-squares linear trend of value against sample index.

    A trend is reported when R^2 > 0.3 and |slope| > 0.01 per sample.
    """
    n = len(points)
    if n < 3:
        return TrendResult(has_trend=False, slope=0.0, r_squared=0.0, direction="flat")

    ys = [p.value for p in points]
    x_mean = (n - 1) / 2
    y_mean = sum(ys) / n

    numerator = sum((i - x_mean) * (y - y_mean) for i, y in enumerate(ys))
    denominator = sum((i - x_mean) ** 2 for i in range(n))
    slope = 0.0 if denominator == 0 else numerator / denominator

    ss_res = sum((y - (y_mean + slope * (i - x_mean))) ** 2 for i, y in enumerate(ys))
    ss_tot = sum((y - y_mean) ** 2 for y in ys)
    r_squared = 0.0 if ss_tot == 0 else 1 - ss_res / ss_tot

    if abs(slope) < 0.01:
        direction = "flat"
    else:
        direction = "up" if slope > 0 else "down"

    return TrendResult(
        has_trend=r_squared > 0.3 and abs(slope) > 0.01,
        slope=slope,
        r_squared=r_squared,
        direction=direction,
    )


def detrend(points: Sequence[DataPoint]) -> List[DataPoint]:
    """Remove the fitted linear trend, keeping the series centred on its mean."""
    trend = detect_trend(points)
    x_mean = (len(points) - 1) / 2
    return [
        DataPoint(timestamp=p.timestamp, value=p.value - trend.slope * (i - x_mean))
        for i, p in enumerate(points)
    ]


def points_to_frame(points: Sequence[DataPoint]) -> pd.DataFrame:
    """DataFrame with integer ``timestamp`` and float ``value`` columns."""
    return pd.DataFrame(
        {
            "timestamp": [p.timestamp for p in points],
            "value": [p.value for p in points],
        }
    )


def points_from_frame(
    frame: pd.DataFrame, timestamp_col: str = "timestamp", value_col: str = "value"
) -> List[DataPoint]:
    """
    Convert a DataFrame of samples into DataPoints.

    Datetime columns (or a DatetimeIndex when timestamp_col is absent) are
    converted to epoch milliseconds; rows with a missing value are dropped.

    Raises:
        DataValidationError: If the value column is missing
    """
    if value_col not in frame.columns:
        raise DataValidationError(f"Missing column: {value_col}")

    if timestamp_col in frame.columns:
        stamps = frame[timestamp_col]
    elif isinstance(frame.index, pd.DatetimeIndex):
        stamps = frame.index.to_series()
    else:
        raise DataValidationError(f"Missing column: {timestamp_col}")

    if pd.api.types.is_datetime64_any_dtype(stamps):
        stamps = pd.to_datetime(stamps, utc=True)
        millis = (stamps - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)
    else:
        millis = stamps.astype("int64")

    data = pd.DataFrame({"timestamp": millis.to_numpy(), "value": frame[value_col].to_numpy()})
    data = data.dropna(subset=["value"])
    return [
        DataPoint(timestamp=int(ts), value=float(v))
        for ts, v in zip(data["timestamp"], data["value"])
    ]


def aggregate(
    points: Sequence[DataPoint], interval_ms: int, method: str = "mean"
) -> List[DataPoint]:
    """
    Bucket points into fixed intervals aligned to epoch boundaries.

    Each bucket is keyed by floor(timestamp / interval) * interval and
    reduced with mean, sum, max, min or last (in input order).

    Raises:
        DataValidationError: For a non-positive interval or unknown method
    """
    if interval_ms <= 0:
        raise DataValidationError("interval_ms must be positive")
    if method not in AGGREGATION_METHODS:
        raise DataValidationError(f"Unknown aggregation method: {method}")
    if not points:
        return []

    frame = points_to_frame(points)
    frame["bucket"] = (frame["timestamp"] // interval_ms) * interval_ms
    reduced = frame.groupby("bucket", sort=True)["value"].agg(method)

    return [DataPoint(timestamp=int(ts), value=float(v)) for ts, v in reduced.items()]


class DataPreprocessor:
    """
    Configured cleaning pipeline.

    Order: sort by time, remove zeros, remove z-score outliers, fill gaps,
    normalise. Each step is toggled by PreprocessConfig.
    """

    def __init__(self, config: Optional[PreprocessConfig] = None) -> None:
        self.config = config or PreprocessConfig()

    def preprocess(
        self, points: Sequence[DataPoint], config: Optional[PreprocessConfig] = None
    ) -> PreprocessResult:
        cfg = config or self.config
        data = sorted(points, key=lambda p: p.timestamp)
        removed = 0
        filled = 0

        if cfg.remove_zeros:
            before = len(data)
            data = [p for p in data if p.value != 0]
            removed += before - len(data)

        if cfg.remove_outliers:
            data, dropped = remove_outliers(data, cfg.outlier_threshold)
            removed += dropped

        if cfg.fill_missing and len(data) >= 2:
            data, filled = fill_missing_values(data, cfg.fill_method)

        if cfg.normalize:
            data = normalize(data, cfg.normalize_method)

        if removed or filled:
            logger.debug(
                "Preprocessed %d points: removed=%d filled=%d", len(points), removed, filled
            )

        return PreprocessResult(
            data=data,
            removed_outliers=removed,
            filled_missing=filled,
            stats=calculate_stats([p.value for p in data]),
        )

