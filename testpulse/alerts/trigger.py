"""
Alert orchestration.

Turns anomalies and health-score drops into alerts and decides whether each
one should notify. Anomaly alerts pass these gates in order:

1. disabled or severity below min_severity: suppressed, no state change
2. cooldown armed for the title: suppressed
3. same title and anomaly-id prefix within deduplication_window_ms:
   suppressed as duplicate, convergence untouched
4. more than max_alerts_per_window alerts with this title inside the
   rolling convergence window: suppressed as converged, cooldown armed
5. otherwise tracked under its dedup key and surfaced

Health-score alerts only use the dedup gate.

State (recent alerts, convergence groups, cooldowns) lives in this process.
Running several instances requires moving those three maps to a shared store
with per-key atomic check-and-set.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from testpulse.anomaly.schema import Anomaly, AnomalyAlert, HealthScore
from testpulse.anomaly.storage import AnomalyStore
from testpulse.core.clock import Clock, system_clock
from testpulse.core.config import AlertConfig
from testpulse.core.enums import AlertLevel
from testpulse.core.exceptions import ConfigurationError

from .state import ConvergenceGroup, ExpiringMap
from .templates import render_alert

logger = logging.getLogger(__name__)

HEALTH_ALERT_TITLE = "Health Score Dropped"


class AlertNotification(BaseModel):
    alert: AnomalyAlert
    should_notify: bool
    reason: Optional[str] = None
    converged_count: Optional[int] = None


class AlertStats(BaseModel):
    total: int = 0
    by_level: Dict[str, int] = Field(default_factory=lambda: {level.value: 0 for level in AlertLevel})
    by_title: Dict[str, int] = Field(default_factory=dict)
    acknowledged: int = 0
    pending: int = 0
    recent_converged: int = 0


def dedup_key(alert: AnomalyAlert) -> str:
    """Title plus the first two '-' segments of the anomaly id."""
    prefix = "-".join(alert.anomaly_id.split("-")[:2])
    return f"{alert.title}:{prefix}"


def convergence_key(alert: AnomalyAlert) -> str:
    return alert.title


class AlertTrigger:
    """
    Stateful alert gate.

    Surfaced alerts are also written to ``store`` when one is given.
    """

    def __init__(
        self,
        config: Optional[AlertConfig] = None,
        clock: Optional[Clock] = None,
        store: Optional[AnomalyStore] = None,
    ) -> None:
        self.config = config or AlertConfig()
        self.clock = clock or system_clock
        self.store = store
        self._recent: Dict[str, List[AnomalyAlert]] = {}
        self._groups: ExpiringMap[ConvergenceGroup] = ExpiringMap(self.clock)
        self._cooldowns: ExpiringMap[int] = ExpiringMap(self.clock)

    def trigger_from_anomaly(self, anomaly: Anomaly) -> AlertNotification:
        now = self.clock()
        alert = render_alert(anomaly, now)

        if not self.config.enabled:
            return self._suppress(alert, "Alerts disabled")

        if anomaly.severity.rank < self.config.min_severity.rank:
            return self._suppress(
                alert,
                f"Severity {anomaly.severity.value} below threshold {self.config.min_severity.value}",
            )

        cooldown_until = self._cooldowns.expires_at(convergence_key(alert))
        if cooldown_until is not None:
            return self._suppress(alert, f"In cooldown ({cooldown_until - now}ms remaining)")

        if self._is_duplicate(alert, now):
            return self._suppress(alert, self._duplicate_reason())

        count = self._converge(alert, now)
        if count > self.config.max_alerts_per_window:
            self._cooldowns.set(convergence_key(alert), now, ttl_ms=self.config.cooldown_period_ms)
            logger.info(
                "Alert '%s' converged after %d alerts; cooling down for %dms",
                alert.title,
                count,
                self.config.cooldown_period_ms,
            )
            return self._suppress(alert, "Alert converged", converged_count=count)

        self._track(alert)
        return AlertNotification(alert=alert, should_notify=True)

    def trigger_from_health_score(
        self, current: HealthScore, previous: Optional[HealthScore]
    ) -> Optional[AlertNotification]:
        """
        Alert on a health-score drop of at least health_drop_threshold points.

        Returns None when disabled, without a previous score, or when the drop
        is too small.
        """
        if not self.config.enabled or previous is None:
            return None

        drop = previous.overall - current.overall
        if drop < self.config.health_drop_threshold:
            return None

        level = (
            AlertLevel.CRITICAL if drop >= self.config.health_critical_drop else AlertLevel.WARNING
        )
        message = (
            f"Overall health score dropped from {previous.overall:g} to {current.overall:g} "
            f"({drop:.1f} points decrease)."
        )
        if current.recommendations:
            message += f" {current.recommendations[0]}"

        now = self.clock()
        alert = AnomalyAlert(
            anomaly_id=f"health-score-{current.calculated_at}",
            level=level,
            title=HEALTH_ALERT_TITLE,
            message=message,
            created_at=now,
        )

        if self._is_duplicate(alert, now):
            return self._suppress(alert, self._duplicate_reason())

        self._track(alert)
        return AlertNotification(alert=alert, should_notify=True)

    # Acknowledgement

    def get_pending_alerts(self) -> List[AnomalyAlert]:
        pending = [a for a in self._all_alerts() if not a.acknowledged]
        return sorted(pending, key=lambda a: a.created_at, reverse=True)

    def acknowledge_alert(self, alert_id: str) -> bool:
        """
        Mark one alert acknowledged. Acknowledging twice is a no-op.

        Returns False for an unknown id.
        """
        for alerts in self._recent.values():
            for i, alert in enumerate(alerts):
                if alert.id == alert_id:
                    if not alert.acknowledged:
                        alerts[i] = self._acknowledge(alert)
                    return True
        logger.warning("Acknowledge on unknown alert %s", alert_id)
        return False

    def acknowledge_all(self) -> int:
        count = 0
        for alerts in self._recent.values():
            for i, alert in enumerate(alerts):
                if not alert.acknowledged:
                    alerts[i] = self._acknowledge(alert)
                    count += 1
        return count

    # Introspection

    def get_stats(self) -> AlertStats:
        stats = AlertStats()
        for alert in self._all_alerts():
            stats.total += 1
            stats.by_level[alert.level.value] += 1
            stats.by_title[alert.title] = stats.by_title.get(alert.title, 0) + 1
            if alert.acknowledged:
                stats.acknowledged += 1
            else:
                stats.pending += 1

        for group in self._groups.values():
            if group.count > 1:
                stats.recent_converged += group.count - 1
        return stats

    def get_convergence_summary(self) -> List[ConvergenceGroup]:
        """Live groups holding more than one alert, largest first."""
        groups = [g for g in self._groups.values() if g.count > 1]
        return sorted(groups, key=lambda g: g.count, reverse=True)

    def in_cooldown(self, title: str) -> bool:
        return title in self._cooldowns

    # Maintenance

    def cleanup(self) -> int:
        """
        Drop alerts older than twice the dedup window, idle convergence groups
        and expired cooldowns. Returns the number of entries removed.
        """
        now = self.clock()
        horizon = 2 * self.config.deduplication_window_ms
        removed = 0

        for key in list(self._recent):
            kept = [a for a in self._recent[key] if now - a.created_at < horizon]
            removed += len(self._recent[key]) - len(kept)
            if kept:
                self._recent[key] = kept
            else:
                del self._recent[key]

        removed += self._groups.purge_expired()
        removed += self._cooldowns.purge_expired()
        logger.debug("Alert cleanup removed %d entries", removed)
        return removed

    def update_config(self, **changes: Any) -> AlertConfig:
        """
        Replace config fields at runtime.

        Raises:
            ConfigurationError: On unknown fields or invalid values
        """
        unknown = set(changes) - set(AlertConfig.model_fields)
        if unknown:
            raise ConfigurationError(f"Unknown alert config fields: {sorted(unknown)}")
        try:
            self.config = AlertConfig(**{**self.config.model_dump(), **changes})
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid alert config: {exc}") from exc
        logger.info("Alert config updated: %s", changes)
        return self.config

    def get_config(self) -> AlertConfig:
        return self.config

    # Internals

    def _suppress(
        self, alert: AnomalyAlert, reason: str, converged_count: Optional[int] = None
    ) -> AlertNotification:
        logger.debug("Suppressed alert '%s' (%s): %s", alert.title, alert.anomaly_id, reason)
        return AlertNotification(
            alert=alert, should_notify=False, reason=reason, converged_count=converged_count
        )

    def _duplicate_reason(self) -> str:
        return f"Duplicate alert (same alert within {self.config.deduplication_window_ms // 1000}s)"

    def _is_duplicate(self, alert: AnomalyAlert, now: int) -> bool:
        return any(
            now - previous.created_at < self.config.deduplication_window_ms
            for previous in self._recent.get(dedup_key(alert), [])
        )

    def _converge(self, alert: AnomalyAlert, now: int) -> int:
        key = convergence_key(alert)
        window = self.config.convergence_window_ms
        group = self._groups.get(key)
        if group is None:
            group = ConvergenceGroup(key=key, first_seen=now, last_seen=now, alerts=[alert])
        else:
            group.add(alert, now)
        # group stays open at exactly last_seen + window
        self._groups.set(key, group, expires_at=now + window + 1)
        return group.count

    def _track(self, alert: AnomalyAlert) -> None:
        self._recent.setdefault(dedup_key(alert), []).append(alert)
        if self.store is not None:
            self.store.save_alert(alert)
        logger.info("Alert %s [%s] %s", alert.id, alert.level.value, alert.title)

    def _acknowledge(self, alert: AnomalyAlert) -> AnomalyAlert:
        updated = alert.acknowledged_copy(self.clock())
        if self.store is not None:
            self.store.save_alert(updated)
        return updated

    def _all_alerts(self) -> List[AnomalyAlert]:
        return [a for alerts in self._recent.values() for a in alerts]
