"""
Detectors for statistical deviations.

Wraps the stateless algorithms behind one capability interface so the
anomaly detector can run any enabled subset and reconcile their votes:

- ZScoreDetector: value vs baseline mean/std
- ModifiedZScoreDetector: value vs median/MAD of the history
- IQRDetector: Tukey fences over the history
- MovingAverageDetector: value vs trailing average/std of the history
- BollingerDetector: value vs Bollinger bands of the history

Detectors are registered per Algorithm and instantiated in the Algorithm
declaration order, which is also the tie-break order between votes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Iterable, List, Optional, Type

from testpulse.core.enums import Algorithm

from .algorithms import (
    detect_bollinger_anomaly,
    detect_iqr_anomaly,
    detect_modified_zscore_anomaly,
    detect_moving_average_anomaly,
    detect_zscore_anomaly,
)
from .schema import Baseline


@dataclass(frozen=True)
class DetectionContext:
    """What a detector may look at: the metric baseline and/or raw history."""

    baseline: Optional[Baseline] = None
    history: List[float] = field(default_factory=list)


@dataclass(frozen=True)
class Verdict:
    algorithm: Algorithm
    is_anomaly: bool
    deviation: float


@dataclass
class Detector(ABC):
    """
    Base detector.

    A detector runs only when ``can_run`` holds: baseline-bound detectors
    need a baseline, history-bound ones need ``min_history`` points.
    """

    threshold: float
    algorithm: ClassVar[Optional[Algorithm]] = None
    min_history: int = 0
    requires_baseline: bool = False

    def can_run(self, context: DetectionContext) -> bool:
        if self.requires_baseline and context.baseline is None:
            return False
        return len(context.history) >= self.min_history

    @abstractmethod
    def detect(self, value: float, context: DetectionContext) -> Verdict:
        ...


@dataclass
class ZScoreDetector(Detector):
    algorithm = Algorithm.ZSCORE
    requires_baseline: bool = True

    def detect(self, value: float, context: DetectionContext) -> Verdict:
        result = detect_zscore_anomaly(value, context.baseline, self.threshold)
        return Verdict(self.algorithm, result.is_anomaly, result.z_score)


@dataclass
class ModifiedZScoreDetector(Detector):
    """
    MAD-based z-score. Runs at threshold + 0.5 since the robust estimator
    produces larger scores on tight histories.
    """

    algorithm = Algorithm.MODIFIED_ZSCORE
    min_history: int = 5
    threshold_offset: float = 0.5

    def detect(self, value: float, context: DetectionContext) -> Verdict:
        result = detect_modified_zscore_anomaly(
            value, context.history, self.threshold + self.threshold_offset
        )
        return Verdict(self.algorithm, result.is_anomaly, result.z_score)


@dataclass
class IQRDetector(Detector):
    algorithm = Algorithm.IQR
    min_history: int = 4
    multiplier: float = 1.5

    def detect(self, value: float, context: DetectionContext) -> Verdict:
        result = detect_iqr_anomaly(value, context.history, self.multiplier)
        return Verdict(self.algorithm, result.is_anomaly, result.deviation)


@dataclass
class MovingAverageDetector(Detector):
    """Trailing-average z-score; the window shrinks to the history length."""

    algorithm = Algorithm.MOVING_AVERAGE
    min_history: int = 10
    window_size: int = 10

    def detect(self, value: float, context: DetectionContext) -> Verdict:
        window = min(self.window_size, len(context.history))
        result = detect_moving_average_anomaly(
            value, context.history, window_size=window, threshold=self.threshold
        )
        return Verdict(self.algorithm, result.is_anomaly, result.z_score)


@dataclass
class BollingerDetector(Detector):
    algorithm = Algorithm.BOLLINGER
    min_history: int = 10
    window_size: int = 20
    multiplier: float = 2.0

    def detect(self, value: float, context: DetectionContext) -> Verdict:
        window = min(self.window_size, len(context.history))
        result = detect_bollinger_anomaly(value, context.history, window, self.multiplier)
        return Verdict(self.algorithm, result.is_anomaly, result.deviation)


DETECTOR_REGISTRY: Dict[Algorithm, Type[Detector]] = {
    Algorithm.ZSCORE: ZScoreDetector,
    Algorithm.MODIFIED_ZSCORE: ModifiedZScoreDetector,
    Algorithm.IQR: IQRDetector,
    Algorithm.MOVING_AVERAGE: MovingAverageDetector,
    Algorithm.BOLLINGER: BollingerDetector,
}


def build_detectors(algorithms: Iterable[Algorithm], threshold: float) -> List[Detector]:
    """Instantiate the enabled detectors in precedence order."""
    enabled = set(algorithms)
    return [DETECTOR_REGISTRY[a](threshold=threshold) for a in Algorithm if a in enabled]


def select_primary(verdicts: Iterable[Verdict]) -> Optional[Verdict]:
    """
    Largest |deviation| among anomalous verdicts.

    Ties keep the earliest verdict, so callers must pass verdicts in
    precedence order.
    """
    primary: Optional[Verdict] = None
    for verdict in verdicts:
        if not verdict.is_anomaly:
            continue
        if primary is None or abs(verdict.deviation) > abs(primary.deviation):
            primary = verdict
    return primary
