"""
Baseline construction and retrieval.

Turns a metric history into a Baseline with one of four estimators:

- moving_average: mean/std/min/max of the most recent window_size points
- exponential_smoothing: recursively smoothed level and matching
  exponentially weighted variance (recent points dominate)
- percentile: median centre, IQR/1.35 std estimate, p5/p95 as min/max
- median: median centre, MAD * 1.4826 std estimate (most robust)

Input is preprocessed first (outlier exclusion when exclude_anomalies is set,
gap interpolation). When seasonality is enabled the values are deseasonalized
before fitting; comparisons against a live value must re-apply the factor for
that timestamp (see ``adjust_baseline``).

Building from an empty series does not raise: ``build`` returns a
BaselineResult carrying EmptyBaselineInputError.
"""

from __future__ import annotations

import logging
import math
import statistics
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from testpulse.core.clock import Clock, system_clock
from testpulse.core.config import BaselineSettings, PreprocessConfig
from testpulse.core.enums import BaselineMethod
from testpulse.core.exceptions import EmptyBaselineInputError, NotFoundError
from testpulse.data.preprocessor import (
    DataPreprocessor,
    calculate_percentile,
    calculate_stats,
)
from testpulse.data.schema import DataPoint, SeasonalityConfig
from testpulse.data.seasonality import SeasonalityAnalyzer

from .schema import Baseline, BaselineConfig, BaselineRecord, BaselineResult
from .storage import AnomalyStore

logger = logging.getLogger(__name__)

IQR_TO_STD = 1.35
MAD_TO_STD = 1.4826


def period_label(window_size: int) -> str:
    """Human label for a window measured in days: "7d", "4w", "2m"."""
    if window_size <= 7:
        return f"{window_size}d"
    if window_size <= 30:
        return f"{math.floor(window_size / 7 + 0.5)}w"
    return f"{math.floor(window_size / 30 + 0.5)}m"


def adjust_baseline(baseline: Baseline, factor: float) -> Baseline:
    """Scale a deseasonalized baseline by a seasonal factor."""
    if factor == 1.0:
        return baseline
    return baseline.model_copy(
        update={
            "mean": baseline.mean * factor,
            "std": baseline.std * abs(factor),
            "min": baseline.min * factor,
            "max": baseline.max * factor,
        }
    )


def _moving_average_fit(values: Sequence[float], window_size: int) -> Dict[str, float]:
    stats = calculate_stats(values[-window_size:])
    return {"mean": stats.mean, "std": stats.std, "min": stats.min, "max": stats.max}


def _exponential_smoothing_fit(values: Sequence[float], alpha: float) -> Dict[str, float]:
    level = values[0]
    for value in values[1:]:
        level = alpha * value + (1 - alpha) * level

    n = len(values)
    weights = [(1 - alpha) ** (n - 1 - i) for i in range(n)]
    variance = sum(w * (v - level) ** 2 for w, v in zip(weights, values)) / sum(weights)

    return {"mean": level, "std": math.sqrt(variance), "min": min(values), "max": max(values)}


def _percentile_fit(values: Sequence[float]) -> Dict[str, float]:
    stats = calculate_stats(values)
    return {
        "mean": stats.median,
        "std": (stats.q3 - stats.q1) / IQR_TO_STD,
        "min": calculate_percentile(values, 5),
        "max": calculate_percentile(values, 95),
    }


def _median_fit(values: Sequence[float]) -> Dict[str, float]:
    median = statistics.median(values)
    mad = statistics.median(abs(v - median) for v in values)
    return {"mean": median, "std": mad * MAD_TO_STD, "min": min(values), "max": max(values)}


class BaselineBuilder:
    """
    Builds, persists and serves per-metric baselines.

    One baseline per metric name; a rebuild replaces the stored record
    wholesale (created_at is preserved).
    """

    def __init__(
        self,
        store: AnomalyStore,
        settings: Optional[BaselineSettings] = None,
        preprocess_config: Optional[PreprocessConfig] = None,
        seasonality: Optional[SeasonalityAnalyzer] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.settings = settings or BaselineSettings()
        self.preprocessor = DataPreprocessor(preprocess_config)
        self.seasonality = seasonality or SeasonalityAnalyzer(
            self.settings.seasonality_strength_threshold
        )
        self.clock = clock or system_clock

    def default_config(self, metric_name: str) -> BaselineConfig:
        return BaselineConfig(
            metric_name=metric_name,
            method=self.settings.method,
            window_size=self.settings.window_size,
            exclude_anomalies=self.settings.exclude_anomalies,
        )

    def build(
        self,
        metric_name: str,
        points: Sequence[DataPoint],
        config: Optional[BaselineConfig] = None,
        auto_detect_seasonality: bool = False,
    ) -> BaselineResult:
        """
        Fit and persist a baseline.

        Returns:
            BaselineResult with the baseline, or with EmptyBaselineInputError
            when no valid points remain after preprocessing.

        Raises:
            PersistenceError: If the store fails to save the record
        """
        cfg = (config or self.default_config(metric_name)).model_copy(
            update={"metric_name": metric_name}, deep=True
        )

        prep_config = self.preprocessor.config.model_copy(
            update={"remove_outliers": cfg.exclude_anomalies, "normalize": False}
        )
        data = self.preprocessor.preprocess(points, prep_config).data
        if not data:
            logger.warning("No valid data points for baseline %s", metric_name)
            return BaselineResult(metric_name, error=EmptyBaselineInputError(metric_name))

        if auto_detect_seasonality and not cfg.seasonality.enabled:
            analysis = self.seasonality.analyze(data, self.settings.seasonality_min_points)
            if analysis.has_seasonality:
                cfg = cfg.model_copy(update={"seasonality": self.seasonality.build_config(analysis)})

        values = [
            self.seasonality.deseasonalize(p.value, p.timestamp, cfg.seasonality) for p in data
        ]
        fit = self._fit(values, cfg.method, cfg.window_size)

        now = self.clock()
        baseline = Baseline(
            **fit,
            sample_count=len(data),
            period=period_label(cfg.window_size),
            last_updated=now,
            p5=calculate_percentile(values, 5),
            p25=calculate_percentile(values, 25),
            p50=calculate_percentile(values, 50),
            p75=calculate_percentile(values, 75),
            p95=calculate_percentile(values, 95),
        )

        existing = self.store.get_baseline_record(metric_name)
        self.store.save_baseline(
            BaselineRecord(
                metric_name=metric_name,
                baseline=baseline,
                config=cfg,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
        )
        logger.info(
            "Built %s baseline for %s: mean=%.4f std=%.4f n=%d",
            cfg.method.value,
            metric_name,
            baseline.mean,
            baseline.std,
            baseline.sample_count,
        )
        return BaselineResult(metric_name, baseline=baseline)

    def update(
        self,
        metric_name: str,
        points: Sequence[DataPoint],
        preserve_seasonality: bool = False,
    ) -> BaselineResult:
        """
        Rebuild an existing baseline from new data with its stored config.

        Without preserve_seasonality the stored seasonality is dropped and
        re-detected from the new data.

        Raises:
            NotFoundError: If the metric has no baseline yet
        """
        record = self.store.get_baseline_record(metric_name)
        if record is None:
            raise NotFoundError("baseline", metric_name)

        config = record.config
        if not preserve_seasonality:
            config = config.model_copy(update={"seasonality": SeasonalityConfig()})

        return self.build(
            metric_name,
            points,
            config=config,
            auto_detect_seasonality=not preserve_seasonality,
        )

    def build_many(
        self,
        metrics: Mapping[str, Sequence[DataPoint]],
        config: Optional[BaselineConfig] = None,
    ) -> Dict[str, BaselineResult]:
        """Build one baseline per metric; an empty series does not stop the others."""
        return {
            name: self.build(name, points, config=config, auto_detect_seasonality=True)
            for name, points in metrics.items()
        }

    def get_baseline(self, metric_name: str) -> Optional[Baseline]:
        return self.store.get_baseline(metric_name)

    def get_record(self, metric_name: str) -> Optional[BaselineRecord]:
        return self.store.get_baseline_record(metric_name)

    def get_adjusted_baseline(self, metric_name: str, timestamp: int) -> Optional[Baseline]:
        """Stored baseline with the seasonal factor for timestamp applied."""
        record = self.store.get_baseline_record(metric_name)
        if record is None:
            return None
        factor = self.seasonality.get_adjustment(timestamp, record.config.seasonality)
        return adjust_baseline(record.baseline, factor)

    def get_expected_value(self, metric_name: str, timestamp: int) -> Optional[float]:
        baseline = self.get_adjusted_baseline(metric_name, timestamp)
        return baseline.mean if baseline else None

    def get_expected_range(
        self, metric_name: str, timestamp: int, sigmas: float = 2.0
    ) -> Optional[Tuple[float, float]]:
        baseline = self.get_adjusted_baseline(metric_name, timestamp)
        if baseline is None:
            return None
        return baseline.mean - sigmas * baseline.std, baseline.mean + sigmas * baseline.std

    def needs_update(self, metric_name: str, max_age_ms: Optional[int] = None) -> bool:
        baseline = self.get_baseline(metric_name)
        if baseline is None:
            return True
        max_age = max_age_ms if max_age_ms is not None else self.settings.max_age_ms
        return self.clock() - baseline.last_updated > max_age

    def get_all_baselines(self) -> List[BaselineRecord]:
        return self.store.get_all_baselines()

    def delete_baseline(self, metric_name: str) -> bool:
        return self.store.delete_baseline(metric_name)

    def clear_all_baselines(self) -> None:
        self.store.clear_baselines()

    def _fit(
        self, values: Sequence[float], method: BaselineMethod, window_size: int
    ) -> Dict[str, float]:
        if method == BaselineMethod.EXPONENTIAL_SMOOTHING:
            return _exponential_smoothing_fit(values, self.settings.smoothing_alpha)
        if method == BaselineMethod.PERCENTILE:
            return _percentile_fit(values)
        if method == BaselineMethod.MEDIAN:
            return _median_fit(values)
        return _moving_average_fit(values, window_size)
