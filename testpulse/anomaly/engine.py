"""
Anomaly detection engine.

Runs the enabled detectors against one metric value, reconciles their votes
into a single verdict, classifies and scores the anomaly, and persists it.

Flow of ``detect``:
1. Detection disabled -> not anomalous, algorithm "none".
2. No baseline and too little history -> not anomalous, algorithm
   "insufficient_data". Callers must check this before reading other fields.
3. Every enabled detector that has enough data votes.
4. No anomalous vote -> not anomalous, deviation of the first vote.
5. Largest |deviation| wins; ties go to the earlier Algorithm.
6. Type from metric-name keywords, severity from SeverityEvaluator.
7. The anomaly is saved with status "new". Store errors propagate.
"""

from __future__ import annotations

import logging
import statistics
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from testpulse.core.clock import Clock, system_clock
from testpulse.core.config import DetectionConfig
from testpulse.core.enums import AnomalyStatus, AnomalyType, Severity
from testpulse.core.exceptions import InvalidStatusTransitionError, NotFoundError
from testpulse.data.schema import ExecutionResult
from testpulse.data.seasonality import SeasonalityAnalyzer

from .algorithms import (
    detect_consecutive_failures,
    detect_flaky_pattern,
    detect_pass_rate_change,
)
from .baselines import adjust_baseline
from .detectors import DetectionContext, Verdict, build_detectors, select_primary
from .schema import (
    Anomaly,
    AnomalyStatistics,
    Baseline,
    BatchDetectionResult,
    CaseDetectionResult,
    DetectionDetails,
    DetectionResult,
    MetricSample,
    RootCause,
    SeverityInput,
)
from .scoring import SeverityEvaluator, overall_severity
from .storage import AnomalyStore

logger = logging.getLogger(__name__)


class RootCauseAnalyzer(Protocol):
    def analyze(self, anomaly: Anomaly) -> List[RootCause]:
        ...


def classify_anomaly(metric_name: str, deviation: float) -> AnomalyType:
    """Anomaly type from metric-name keywords and deviation sign."""
    name = metric_name.lower()

    if "duration" in name or "time" in name:
        return AnomalyType.DURATION_SPIKE if deviation > 0 else AnomalyType.PERFORMANCE_DEGRADATION
    if "failure" in name or "error" in name:
        return AnomalyType.FAILURE_SPIKE
    if "success" in name or "pass" in name:
        return AnomalyType.SUCCESS_RATE_DROP if deviation < 0 else AnomalyType.TREND_CHANGE
    if "memory" in name or "cpu" in name or "resource" in name:
        return AnomalyType.RESOURCE_ANOMALY
    return AnomalyType.DURATION_SPIKE if deviation > 0 else AnomalyType.PERFORMANCE_DEGRADATION


def describe_anomaly(anomaly_type: AnomalyType, deviation: float, metric_name: str) -> str:
    magnitude = f"{abs(deviation):.1f}σ"
    direction = "above" if deviation > 0 else "below"

    if anomaly_type == AnomalyType.DURATION_SPIKE:
        return f"Test execution time {magnitude} {direction} baseline"
    if anomaly_type in (AnomalyType.FAILURE_SPIKE, AnomalyType.CONSECUTIVE_FAILURES):
        return f"Failure rate {magnitude} {direction} normal"
    if anomaly_type in (AnomalyType.FLAKY_PATTERN, AnomalyType.FLAKY_DETECTED):
        return "Inconsistent test results detected"
    if anomaly_type == AnomalyType.PERFORMANCE_DEGRADATION:
        return f"Performance {magnitude} {direction} baseline"
    if anomaly_type in (AnomalyType.SUCCESS_RATE_DROP, AnomalyType.PASS_RATE_DROP):
        return f"Success rate {magnitude} {direction} baseline"
    if anomaly_type == AnomalyType.RESOURCE_ANOMALY:
        return f"Resource usage {magnitude} {direction} normal"
    if anomaly_type == AnomalyType.TREND_CHANGE:
        return "Metric trend changed significantly"
    if anomaly_type == AnomalyType.SEASONAL_DEVIATION:
        return "Unusual deviation from seasonal pattern"
    return f"{metric_name} is {magnitude} {direction} expected"


def overall_status(anomalies: Iterable[Anomaly]) -> str:
    """"critical" if any high/critical anomaly, "warning" if any, else "normal"."""
    severities = [anomaly.severity for anomaly in anomalies]
    if not severities:
        return "normal"
    if overall_severity(*severities).rank >= Severity.HIGH.rank:
        return "critical"
    return "warning"


class AnomalyDetector:
    """
    Ensemble anomaly detector over a pluggable AnomalyStore.

    Stateless apart from the store: concurrent calls for different metrics
    are independent, and repeated calls for one metric each persist their
    own anomaly.
    """

    def __init__(
        self,
        store: AnomalyStore,
        evaluator: Optional[SeverityEvaluator] = None,
        config: Optional[DetectionConfig] = None,
        seasonality: Optional[SeasonalityAnalyzer] = None,
        clock: Optional[Clock] = None,
        root_cause_analyzer: Optional[RootCauseAnalyzer] = None,
    ) -> None:
        self.store = store
        self.evaluator = evaluator or SeverityEvaluator()
        self.config = config or DetectionConfig()
        self.seasonality = seasonality or SeasonalityAnalyzer()
        self.clock = clock or system_clock
        self.root_cause_analyzer = root_cause_analyzer

    # Detection

    def detect(
        self,
        metric_name: str,
        value: float,
        timestamp: Optional[int] = None,
        config: Optional[DetectionConfig] = None,
        history: Optional[Sequence[float]] = None,
        case_id: Optional[str] = None,
        case_name: Optional[str] = None,
    ) -> DetectionResult:
        """
        Judge one metric value.

        Raises:
            PersistenceError: If the store fails while reading or saving
        """
        cfg = config or self.config
        if not cfg.enabled:
            return DetectionResult(is_anomaly=False, details=DetectionDetails(algorithm="none"))

        ts = timestamp if timestamp is not None else self.clock()
        values = list(history or [])
        baseline = self._baseline_for(metric_name, ts)

        if baseline is None and len(values) < cfg.min_data_points:
            logger.debug("Insufficient data for %s (%d points)", metric_name, len(values))
            return DetectionResult(
                is_anomaly=False, details=DetectionDetails(algorithm="insufficient_data")
            )

        context = DetectionContext(baseline=baseline, history=values)
        verdicts: List[Verdict] = [
            detector.detect(value, context)
            for detector in build_detectors(cfg.algorithms, cfg.threshold)
            if detector.can_run(context)
        ]
        for verdict in verdicts:
            logger.debug(
                "%s %s: anomaly=%s deviation=%.4f",
                metric_name,
                verdict.algorithm.value,
                verdict.is_anomaly,
                verdict.deviation,
            )

        primary = select_primary(verdicts)
        if primary is None:
            return DetectionResult(
                is_anomaly=False,
                details=DetectionDetails(
                    algorithm="all",
                    deviation=verdicts[0].deviation if verdicts else 0.0,
                    threshold=cfg.threshold,
                    baseline=baseline,
                ),
            )

        anomaly_type = classify_anomaly(metric_name, primary.deviation)
        severity_result = self.evaluator.evaluate(
            SeverityInput(
                deviation=primary.deviation,
                anomaly_type=anomaly_type,
                is_regression=self.is_regression(metric_name, cfg),
            )
        )

        if baseline is not None:
            expected = baseline.mean
        else:
            expected = statistics.fmean(values) if values else 0.0

        anomaly = Anomaly(
            type=anomaly_type,
            severity=severity_result.severity,
            detected_at=ts,
            metric_name=metric_name,
            current_value=value,
            expected_value=expected,
            deviation=primary.deviation,
            algorithm=primary.algorithm.value,
            case_id=case_id,
            case_name=case_name,
            description=describe_anomaly(anomaly_type, primary.deviation, metric_name),
            severity_result=severity_result,
        )
        self.store.save_anomaly(anomaly)
        logger.info(
            "Anomaly %s on %s: %s %s (%s, deviation=%.2f)",
            anomaly.id,
            metric_name,
            anomaly.severity.value,
            anomaly.type.value,
            primary.algorithm.value,
            primary.deviation,
        )

        return DetectionResult(
            is_anomaly=True,
            anomaly=anomaly,
            details=DetectionDetails(
                algorithm=primary.algorithm.value,
                deviation=primary.deviation,
                threshold=cfg.threshold,
                baseline=baseline,
            ),
        )

    def detect_for_case(
        self,
        case_id: str,
        metrics: Sequence[MetricSample],
        timestamp: Optional[int] = None,
        config: Optional[DetectionConfig] = None,
    ) -> CaseDetectionResult:
        ts = timestamp if timestamp is not None else self.clock()
        anomalies = []
        for metric in metrics:
            result = self.detect(
                f"{case_id}:{metric.name}",
                metric.value,
                timestamp=ts,
                config=config,
                history=metric.history,
                case_id=case_id,
                case_name=metric.case_name,
            )
            if result.anomaly is not None:
                anomalies.append(result.anomaly)

        return CaseDetectionResult(
            case_id=case_id, anomalies=anomalies, overall_status=overall_status(anomalies)
        )

    def detect_batch(
        self,
        metrics: Sequence[MetricSample],
        timestamp: Optional[int] = None,
        config: Optional[DetectionConfig] = None,
    ) -> BatchDetectionResult:
        ts = timestamp if timestamp is not None else self.clock()
        results = [
            self.detect(
                metric.name,
                metric.value,
                timestamp=ts,
                config=config,
                history=metric.history,
                case_id=metric.case_id,
                case_name=metric.case_name,
            )
            for metric in metrics
        ]
        batch = BatchDetectionResult(results=results)
        batch.overall_status = overall_status(batch.anomalies)
        return batch

    def detect_patterns(
        self,
        case_id: str,
        results: Sequence[ExecutionResult],
        config: Optional[DetectionConfig] = None,
    ) -> List[Anomaly]:
        """
        Pass/fail pattern anomalies for one test case.

        Checks the current failure streak, flakiness and the pass-rate change
        between the last two windows. Each finding is persisted under the
        metric "<case_id>:pattern".
        """
        thresholds = (config or self.config).thresholds
        now = self.clock()
        anomalies: List[Anomaly] = []

        streak = detect_consecutive_failures(
            results, failure_threshold=thresholds.consecutive_failures
        )
        if streak.is_anomaly:
            anomalies.append(
                self._pattern_anomaly(
                    case_id,
                    AnomalyType.FAILURE_SPIKE,
                    float(streak.consecutive_failures),
                    f"Detected {streak.consecutive_failures} consecutive failures",
                    now,
                    consecutive_failures=streak.consecutive_failures,
                )
            )

        flaky = detect_flaky_pattern(
            results,
            min_executions=thresholds.flaky_min_executions,
            flaky_threshold=thresholds.flaky_threshold,
        )
        if flaky.is_flaky:
            anomalies.append(
                self._pattern_anomaly(
                    case_id,
                    AnomalyType.FLAKY_PATTERN,
                    float(flaky.alternations),
                    f"Flaky test pattern: {flaky.flaky_score * 100:.1f}% instability",
                    now,
                )
            )

        change = detect_pass_rate_change(
            results,
            window_size=thresholds.pass_rate_window,
            change_threshold=thresholds.pass_rate_drop,
        )
        if change.has_change:
            dropped = change.change < 0
            anomalies.append(
                self._pattern_anomaly(
                    case_id,
                    AnomalyType.SUCCESS_RATE_DROP if dropped else AnomalyType.TREND_CHANGE,
                    abs(change.change),
                    f"Pass rate {'dropped' if dropped else 'increased'} by "
                    f"{abs(change.change) * 100:.1f}%",
                    now,
                )
            )

        return anomalies

    def is_regression(self, metric_name: str, config: Optional[DetectionConfig] = None) -> bool:
        """True when an anomaly on exactly this metric was resolved within the lookback."""
        lookback = (config or self.config).regression_lookback_ms
        now = self.clock()
        return any(
            a.status == AnomalyStatus.RESOLVED
            and a.resolved_at is not None
            and now - a.resolved_at < lookback
            for a in self.store.get_anomalies_by_metric(metric_name)
        )

    # Queries

    def get_active_anomalies(
        self,
        severities: Optional[Iterable[Severity]] = None,
        types: Optional[Iterable[AnomalyType]] = None,
        case_id: Optional[str] = None,
    ) -> List[Anomaly]:
        anomalies = self.store.get_active_anomalies()
        if severities:
            wanted = set(severities)
            anomalies = [a for a in anomalies if a.severity in wanted]
        if types:
            wanted_types = set(types)
            anomalies = [a for a in anomalies if a.type in wanted_types]
        if case_id:
            anomalies = [a for a in anomalies if a.case_id == case_id]
        return anomalies

    def get_anomalies_by_time_range(self, start: int, end: int) -> List[Anomaly]:
        return self.store.get_anomalies_by_time_range(start, end)

    def get_anomaly(self, anomaly_id: str) -> Optional[Anomaly]:
        return self.store.get_anomaly(anomaly_id)

    def get_statistics(self, start: Optional[int] = None, end: Optional[int] = None) -> AnomalyStatistics:
        if start is not None and end is not None:
            anomalies = self.store.get_anomalies_by_time_range(start, end)
        else:
            anomalies = self.store.get_all_anomalies()

        stats = AnomalyStatistics(
            total=len(anomalies),
            by_severity={s.value: 0 for s in Severity},
            by_status={s.value: 0 for s in AnomalyStatus},
        )
        for anomaly in anomalies:
            stats.by_severity[anomaly.severity.value] += 1
            stats.by_type[anomaly.type.value] = stats.by_type.get(anomaly.type.value, 0) + 1
            stats.by_status[anomaly.status.value] += 1
        return stats

    # Lifecycle

    def update_status(self, anomaly_id: str, status: AnomalyStatus) -> Anomaly:
        """
        Move an anomaly to a new status.

        Setting the current status again is a no-op. RESOLVED is terminal.

        Raises:
            NotFoundError: If the id is unknown
            InvalidStatusTransitionError: If the anomaly is already resolved
        """
        anomaly = self.store.get_anomaly(anomaly_id)
        if anomaly is None:
            raise NotFoundError("anomaly", anomaly_id)
        if anomaly.status == status:
            return anomaly
        if anomaly.status == AnomalyStatus.RESOLVED:
            raise InvalidStatusTransitionError(
                f"Anomaly {anomaly_id} is resolved and cannot move to {status.value}"
            )

        now = self.clock()
        update: Dict[str, object] = {"status": status}
        if status == AnomalyStatus.ACKNOWLEDGED and anomaly.acknowledged_at is None:
            update["acknowledged_at"] = now
        if status == AnomalyStatus.RESOLVED:
            update["resolved_at"] = now

        updated = anomaly.model_copy(update=update)
        self.store.save_anomaly(updated)
        logger.info("Anomaly %s: %s -> %s", anomaly_id, anomaly.status.value, status.value)
        return updated

    def acknowledge(self, anomaly_id: str) -> Anomaly:
        return self.update_status(anomaly_id, AnomalyStatus.ACKNOWLEDGED)

    def investigate(self, anomaly_id: str) -> Anomaly:
        return self.update_status(anomaly_id, AnomalyStatus.INVESTIGATING)

    def resolve(self, anomaly_id: str) -> Anomaly:
        return self.update_status(anomaly_id, AnomalyStatus.RESOLVED)

    def attach_root_causes(self, anomaly_id: str, root_causes: Sequence[RootCause]) -> Anomaly:
        """Append explanations; existing root causes are never replaced."""
        anomaly = self.store.get_anomaly(anomaly_id)
        if anomaly is None:
            raise NotFoundError("anomaly", anomaly_id)
        updated = anomaly.model_copy(
            update={"root_causes": anomaly.root_causes + list(root_causes)}
        )
        self.store.save_anomaly(updated)
        return updated

    def analyze_root_causes(self, anomaly_id: str) -> Anomaly:
        """Run the configured analyzer and attach its findings."""
        anomaly = self.store.get_anomaly(anomaly_id)
        if anomaly is None:
            raise NotFoundError("anomaly", anomaly_id)
        if self.root_cause_analyzer is None:
            return anomaly
        return self.attach_root_causes(anomaly_id, self.root_cause_analyzer.analyze(anomaly))

    def auto_resolve_stale(self, max_age_ms: Optional[int] = None) -> int:
        """Resolve active anomalies detected more than max_age_ms ago."""
        max_age = max_age_ms if max_age_ms is not None else self.config.stale_after_ms
        now = self.clock()
        resolved = 0
        for anomaly in self.store.get_active_anomalies():
            if now - anomaly.detected_at > max_age:
                self.resolve(anomaly.id)
                resolved += 1
        if resolved:
            logger.info("Auto-resolved %d stale anomalies", resolved)
        return resolved

    def delete_anomaly(self, anomaly_id: str) -> bool:
        return self.store.delete_anomaly(anomaly_id)

    def clear_all(self) -> None:
        self.store.clear_anomalies()

    # Internals

    def _baseline_for(self, metric_name: str, timestamp: int) -> Optional[Baseline]:
        record = self.store.get_baseline_record(metric_name)
        if record is None:
            return None
        factor = self.seasonality.get_adjustment(timestamp, record.config.seasonality)
        return adjust_baseline(record.baseline, factor)

    def _pattern_anomaly(
        self,
        case_id: str,
        anomaly_type: AnomalyType,
        deviation: float,
        description: str,
        timestamp: int,
        consecutive_failures: Optional[int] = None,
    ) -> Anomaly:
        severity_result = self.evaluator.evaluate(
            SeverityInput(
                deviation=deviation,
                anomaly_type=anomaly_type,
                consecutive_failures=consecutive_failures,
            )
        )
        anomaly = Anomaly(
            type=anomaly_type,
            severity=severity_result.severity,
            detected_at=timestamp,
            metric_name=f"{case_id}:pattern",
            current_value=deviation,
            expected_value=0.0,
            deviation=deviation,
            algorithm="pattern",
            case_id=case_id,
            description=description,
            severity_result=severity_result,
        )
        self.store.save_anomaly(anomaly)
        logger.info("Pattern anomaly %s on %s: %s", anomaly.id, case_id, description)
        return anomaly
