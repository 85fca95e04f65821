"""
Persistence interface for anomalies, baselines, health scores and alerts.

The pipeline only talks to AnomalyStore. Implementations own their
timeouts and must raise PersistenceError when the backend fails; callers in
the detection path let that error propagate.

InMemoryAnomalyStore keeps deep copies so callers can never mutate stored
records by accident. It is single-process only.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from testpulse.core.enums import AnomalyStatus

from .schema import Anomaly, AnomalyAlert, Baseline, BaselineRecord, HealthScore

logger = logging.getLogger(__name__)


class AnomalyStore(ABC):
    """
    Abstract store.

    "Recent" accessors return newest first, ordered by the record timestamp
    (detected_at, calculated_at or created_at).
    """

    # Anomalies

    @abstractmethod
    def save_anomaly(self, anomaly: Anomaly) -> None:
        """Insert or replace by id."""

    @abstractmethod
    def get_anomaly(self, anomaly_id: str) -> Optional[Anomaly]:
        ...

    @abstractmethod
    def get_all_anomalies(self) -> List[Anomaly]:
        ...

    @abstractmethod
    def delete_anomaly(self, anomaly_id: str) -> bool:
        ...

    @abstractmethod
    def clear_anomalies(self) -> None:
        ...

    def get_active_anomalies(self) -> List[Anomaly]:
        return [a for a in self.get_all_anomalies() if a.status != AnomalyStatus.RESOLVED]

    def get_anomalies_by_metric(self, metric_name: str) -> List[Anomaly]:
        return [a for a in self.get_all_anomalies() if a.metric_name == metric_name]

    def get_anomalies_by_time_range(self, start: int, end: int) -> List[Anomaly]:
        return [a for a in self.get_all_anomalies() if start <= a.detected_at <= end]

    def get_recent_anomalies(self, limit: int = 50) -> List[Anomaly]:
        ordered = sorted(self.get_all_anomalies(), key=lambda a: a.detected_at, reverse=True)
        return ordered[:limit]

    # Baselines

    @abstractmethod
    def save_baseline(self, record: BaselineRecord) -> None:
        ...

    @abstractmethod
    def get_baseline_record(self, metric_name: str) -> Optional[BaselineRecord]:
        ...

    @abstractmethod
    def get_all_baselines(self) -> List[BaselineRecord]:
        ...

    @abstractmethod
    def delete_baseline(self, metric_name: str) -> bool:
        ...

    @abstractmethod
    def clear_baselines(self) -> None:
        ...

    def get_baseline(self, metric_name: str) -> Optional[Baseline]:
        record = self.get_baseline_record(metric_name)
        return record.baseline if record else None

    # Health scores

    @abstractmethod
    def save_health_score(self, score: HealthScore) -> None:
        ...

    @abstractmethod
    def get_health_score_history(self, limit: int = 30) -> List[HealthScore]:
        """Newest first."""

    def get_latest_health_score(self) -> Optional[HealthScore]:
        history = self.get_health_score_history(1)
        return history[0] if history else None

    # Alerts

    @abstractmethod
    def save_alert(self, alert: AnomalyAlert) -> None:
        """Insert or replace by id."""

    @abstractmethod
    def get_alert(self, alert_id: str) -> Optional[AnomalyAlert]:
        ...

    @abstractmethod
    def get_recent_alerts(self, limit: int = 50) -> List[AnomalyAlert]:
        """Newest first."""

    # Maintenance

    @abstractmethod
    def cleanup_old_data(self, cutoff: int) -> int:
        """Drop resolved anomalies, health scores and alerts older than cutoff. Returns count removed."""


class InMemoryAnomalyStore(AnomalyStore):
    """Dictionary-backed store for tests and single-process deployments."""

    def __init__(self) -> None:
        self._anomalies: Dict[str, Anomaly] = {}
        self._baselines: Dict[str, BaselineRecord] = {}
        self._health_scores: List[HealthScore] = []
        self._alerts: Dict[str, AnomalyAlert] = {}

    def save_anomaly(self, anomaly: Anomaly) -> None:
        self._anomalies[anomaly.id] = anomaly.model_copy(deep=True)

    def get_anomaly(self, anomaly_id: str) -> Optional[Anomaly]:
        anomaly = self._anomalies.get(anomaly_id)
        return anomaly.model_copy(deep=True) if anomaly else None

    def get_all_anomalies(self) -> List[Anomaly]:
        return [a.model_copy(deep=True) for a in self._anomalies.values()]

    def delete_anomaly(self, anomaly_id: str) -> bool:
        return self._anomalies.pop(anomaly_id, None) is not None

    def clear_anomalies(self) -> None:
        self._anomalies.clear()

    def save_baseline(self, record: BaselineRecord) -> None:
        self._baselines[record.metric_name] = record.model_copy(deep=True)

    def get_baseline_record(self, metric_name: str) -> Optional[BaselineRecord]:
        record = self._baselines.get(metric_name)
        return record.model_copy(deep=True) if record else None

    def get_all_baselines(self) -> List[BaselineRecord]:
        return [r.model_copy(deep=True) for r in self._baselines.values()]

    def delete_baseline(self, metric_name: str) -> bool:
        return self._baselines.pop(metric_name, None) is not None

    def clear_baselines(self) -> None:
        self._baselines.clear()

    def save_health_score(self, score: HealthScore) -> None:
        self._health_scores.append(score.model_copy(deep=True))

    def get_health_score_history(self, limit: int = 30) -> List[HealthScore]:
        ordered = sorted(self._health_scores, key=lambda s: s.calculated_at, reverse=True)
        return [s.model_copy(deep=True) for s in ordered[:limit]]

    def save_alert(self, alert: AnomalyAlert) -> None:
        self._alerts[alert.id] = alert

    def get_alert(self, alert_id: str) -> Optional[AnomalyAlert]:
        return self._alerts.get(alert_id)

    def get_recent_alerts(self, limit: int = 50) -> List[AnomalyAlert]:
        ordered = sorted(self._alerts.values(), key=lambda a: a.created_at, reverse=True)
        return ordered[:limit]

    def cleanup_old_data(self, cutoff: int) -> int:
        stale_anomalies = [
            a.id for a in self._anomalies.values()
            if a.status == AnomalyStatus.RESOLVED and a.detected_at < cutoff
        ]
        for anomaly_id in stale_anomalies:
            del self._anomalies[anomaly_id]

        before_scores = len(self._health_scores)
        self._health_scores = [s for s in self._health_scores if s.calculated_at >= cutoff]

        stale_alerts = [a.id for a in self._alerts.values() if a.created_at < cutoff]
        for alert_id in stale_alerts:
            del self._alerts[alert_id]

        removed = len(stale_anomalies) + before_scores - len(self._health_scores) + len(stale_alerts)
        logger.debug("Removed %d records older than %d", removed, cutoff)
        return removed
