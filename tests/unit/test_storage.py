"""
Unit tests for the in-memory anomaly store.
"""

from testpulse.anomaly.schema import (
    Anomaly,
    AnomalyAlert,
    BaselineConfig,
    BaselineRecord,
    HealthScore,
    RootCause,
)
from testpulse.core.config import DAY_MS
from testpulse.core.enums import AlertLevel, AnomalyStatus, AnomalyType, Severity

from conftest import T0


def _anomaly(detected_at=T0, metric_name="suite.duration", **overrides):
    return Anomaly(
        type=AnomalyType.DURATION_SPIKE,
        severity=Severity.MEDIUM,
        detected_at=detected_at,
        metric_name=metric_name,
        current_value=10.0,
        expected_value=5.0,
        deviation=3.5,
        **overrides,
    )


def test_saved_anomaly_is_isolated_copy(store):
    anomaly = _anomaly()
    store.save_anomaly(anomaly)

    loaded = store.get_anomaly(anomaly.id)
    loaded.root_causes.append(RootCause(category="code_change", description="d", confidence=50.0))

    assert store.get_anomaly(anomaly.id).root_causes == []


def test_anomaly_queries(store):
    old = _anomaly(detected_at=T0)
    new = _anomaly(detected_at=T0 + DAY_MS, metric_name="suite.failures")
    resolved = _anomaly(detected_at=T0 + 2 * DAY_MS, status=AnomalyStatus.RESOLVED)
    for anomaly in (old, new, resolved):
        store.save_anomaly(anomaly)

    assert [a.id for a in store.get_recent_anomalies(2)] == [resolved.id, new.id]
    assert {a.id for a in store.get_active_anomalies()} == {old.id, new.id}
    assert [a.id for a in store.get_anomalies_by_metric("suite.failures")] == [new.id]
    assert len(store.get_anomalies_by_time_range(T0, T0 + DAY_MS)) == 2

    assert store.delete_anomaly(old.id)
    assert not store.delete_anomaly(old.id)
    store.clear_anomalies()
    assert store.get_all_anomalies() == []


def test_baseline_records(store, steady_baseline):
    record = BaselineRecord(
        metric_name="m",
        baseline=steady_baseline,
        config=BaselineConfig(metric_name="m"),
        created_at=T0,
        updated_at=T0,
    )
    store.save_baseline(record)

    assert store.get_baseline("m") == steady_baseline
    assert store.get_baseline("other") is None
    assert len(store.get_all_baselines()) == 1
    assert store.delete_baseline("m")
    assert store.get_baseline_record("m") is None


def test_health_score_history(store):
    for offset, value in enumerate([80.0, 70.0, 90.0]):
        store.save_health_score(HealthScore(overall=value, calculated_at=T0 + offset))

    assert [s.overall for s in store.get_health_score_history(2)] == [90.0, 70.0]
    assert store.get_latest_health_score().overall == 90.0


def test_cleanup_old_data(store):
    store.save_anomaly(_anomaly(detected_at=T0, status=AnomalyStatus.RESOLVED))
    store.save_anomaly(_anomaly(detected_at=T0))
    store.save_health_score(HealthScore(overall=50.0, calculated_at=T0))
    store.save_alert(
        AnomalyAlert(anomaly_id="anomaly-1", level=AlertLevel.INFO, title="t", message="m", created_at=T0)
    )
    recent = AnomalyAlert(
        anomaly_id="anomaly-2", level=AlertLevel.INFO, title="t", message="m", created_at=T0 + DAY_MS
    )
    store.save_alert(recent)

    assert store.cleanup_old_data(T0 + 1) == 3
    assert len(store.get_all_anomalies()) == 1
    assert store.get_latest_health_score() is None
    assert store.get_recent_alerts() == [recent]
