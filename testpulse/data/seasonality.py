"""
Seasonality detection and multiplicative adjustment.

Detects daily, weekly and monthly cycles in a metric series and expresses
each as a table of multiplicative factors per calendar bucket:

- daily: night (00-05), morning (06-11), afternoon (12-17), evening (18-23)
- weekly: day names, monday..sunday
- monthly: week1 (days 1-7) .. week5 (days 29-31)

A value is deseasonalized by dividing by the product of the factors of every
active pattern and reseasonalized by multiplying it back. Calendar buckets are
computed in UTC.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from testpulse.data.preprocessor import calculate_stats
from testpulse.data.schema import (
    CycleInfo,
    DataPoint,
    SeasonalAnalysis,
    SeasonalityConfig,
    SeasonalPattern,
)

logger = logging.getLogger(__name__)

MS_PER_HOUR = 60 * 60 * 1000
MS_PER_DAY = 24 * MS_PER_HOUR
MS_PER_WEEK = 7 * MS_PER_DAY
MS_PER_MONTH = 30 * MS_PER_DAY

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
HOUR_BUCKETS = ["night", "morning", "afternoon", "evening"]
WEEK_BUCKETS = ["week1", "week2", "week3", "week4", "week5"]

# (month, day) pairs treated as holidays
HOLIDAYS = {(1, 1), (7, 4), (12, 25)}


def _utc(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)


def hour_bucket(timestamp: int) -> str:
    return HOUR_BUCKETS[_utc(timestamp).hour // 6]


def day_bucket(timestamp: int) -> str:
    return DAY_NAMES[_utc(timestamp).weekday()]


def week_of_month_bucket(timestamp: int) -> str:
    day = _utc(timestamp).day
    return WEEK_BUCKETS[min((day - 1) // 7, 4)]


PATTERN_BUCKETS: Dict[str, Tuple[Callable[[int], str], List[str]]] = {
    "daily": (hour_bucket, HOUR_BUCKETS),
    "weekly": (day_bucket, DAY_NAMES),
    "monthly": (week_of_month_bucket, WEEK_BUCKETS),
}

# Minimum data span before each pattern is considered.
PATTERN_MIN_SPAN = {
    "daily": 3 * MS_PER_DAY,
    "weekly": 3 * MS_PER_WEEK,
    "monthly": 3 * MS_PER_MONTH,
}


class SeasonalityAnalyzer:
    """
    Detects calendar cycles and applies them as multiplicative adjustments.

    A pattern is kept when its strength, min(1, 2 * RMS(factor - 1)) over
    populated buckets, exceeds strength_threshold.
    """

    def __init__(self, strength_threshold: float = 0.3) -> None:
        self.strength_threshold = strength_threshold

    def analyze(self, points: Sequence[DataPoint], min_points: int = 14) -> SeasonalAnalysis:
        if len(points) < min_points:
            return SeasonalAnalysis()

        ordered = sorted(points, key=lambda p: p.timestamp)
        span = ordered[-1].timestamp - ordered[0].timestamp

        patterns: List[SeasonalPattern] = []
        confidence = 0.0
        dominant = "none"

        for pattern_type in ("daily", "weekly", "monthly"):
            if span < PATTERN_MIN_SPAN[pattern_type]:
                continue
            adjustments, strength = self.detect_pattern(ordered, pattern_type)
            if strength <= self.strength_threshold:
                continue
            patterns.append(SeasonalPattern(type=pattern_type, adjustments=adjustments))
            if strength > confidence:
                confidence = strength
                dominant = pattern_type

        if patterns:
            logger.debug("Seasonality detected: %s (confidence=%.2f)", dominant, confidence)

        return SeasonalAnalysis(
            has_seasonality=bool(patterns),
            patterns=patterns,
            confidence=confidence,
            dominant_period=dominant,
        )

    def detect_pattern(
        self, points: Sequence[DataPoint], pattern_type: str
    ) -> Tuple[Dict[str, float], float]:
        """
        Factor table and strength for one pattern type.

        Empty buckets get a factor of 1 and do not count towards strength.
        """
        key_fn, keys = PATTERN_BUCKETS[pattern_type]
        buckets: Dict[str, List[float]] = {key: [] for key in keys}
        for point in points:
            buckets[key_fn(point.timestamp)].append(point.value)

        overall_mean = sum(p.value for p in points) / len(points) if points else 0.0
        adjustments: Dict[str, float] = {}
        squared = 0.0
        populated = 0

        for key in keys:
            values = buckets[key]
            if not values:
                adjustments[key] = 1.0
                continue
            bucket_mean = sum(values) / len(values)
            adjustments[key] = bucket_mean / overall_mean if overall_mean != 0 else 1.0
            squared += (adjustments[key] - 1) ** 2
            populated += 1

        strength = min(1.0, math.sqrt(squared / populated) * 2) if populated > 1 else 0.0
        return adjustments, strength

    def get_adjustment(self, timestamp: int, config: Optional[SeasonalityConfig]) -> float:
        if config is None or not config.enabled or not config.patterns:
            return 1.0

        total = 1.0
        for pattern in config.patterns:
            if pattern.type not in PATTERN_BUCKETS:
                continue
            key_fn, _ = PATTERN_BUCKETS[pattern.type]
            total *= pattern.adjustments.get(key_fn(timestamp), 1.0)
        return total

    def deseasonalize(
        self, value: float, timestamp: int, config: Optional[SeasonalityConfig]
    ) -> float:
        adjustment = self.get_adjustment(timestamp, config)
        return value / adjustment if adjustment != 0 else value

    def reseasonalize(
        self, value: float, timestamp: int, config: Optional[SeasonalityConfig]
    ) -> float:
        return value * self.get_adjustment(timestamp, config)

    def build_config(self, analysis: SeasonalAnalysis) -> SeasonalityConfig:
        return SeasonalityConfig(enabled=analysis.has_seasonality, patterns=analysis.patterns)

    def detect_autocorrelation(
        self, points: Sequence[DataPoint], max_lag: int = 30
    ) -> List[Tuple[int, float]]:
        """
        Autocorrelation for lags 1..max_lag as (lag, correlation) pairs.

        Requires at least max_lag + 10 points; returns [] otherwise.
        """
        if len(points) < max_lag + 10:
            return []

        values = [p.value for p in points]
        stats = calculate_stats(values)
        variance = stats.std ** 2
        results = []
        for lag in range(1, max_lag + 1):
            pairs = len(values) - lag
            total = sum(
                (values[i] - stats.mean) * (values[i + lag] - stats.mean) for i in range(pairs)
            )
            correlation = total / (pairs * variance) if variance != 0 else 0.0
            results.append((lag, correlation))
        return results

    def find_dominant_cycle(self, points: Sequence[DataPoint]) -> Optional[CycleInfo]:
        """
        Strongest local autocorrelation peak above 0.3, or None.

        Lags up to 7 samples are reported as daily, up to 14 as weekly,
        anything longer as monthly.
        """
        autocorr = self.detect_autocorrelation(points, 60)
        if not autocorr:
            return None

        peaks = [
            autocorr[i]
            for i in range(1, len(autocorr) - 1)
            if autocorr[i][1] > autocorr[i - 1][1]
            and autocorr[i][1] > autocorr[i + 1][1]
            and autocorr[i][1] > 0.3
        ]
        if not peaks:
            return None

        lag, strength = max(peaks, key=lambda peak: peak[1])
        if lag <= 7:
            cycle_type = "daily"
        elif lag <= 14:
            cycle_type = "weekly"
        else:
            cycle_type = "monthly"

        avg_interval = (points[-1].timestamp - points[0].timestamp) / (len(points) - 1)
        return CycleInfo(period_ms=lag * avg_interval, strength=strength, type=cycle_type)

    def is_holiday(self, timestamp: int) -> bool:
        moment = _utc(timestamp)
        return (moment.month, moment.day) in HOLIDAYS

    def holiday_adjustment(self, timestamp: int, holiday_factor: float = 0.5) -> float:
        return holiday_factor if self.is_holiday(timestamp) else 1.0
