"""
Alert templates.

One template per AnomalyType. Message placeholders:
{value}, {expected}, {deviation}, {count}, {metric}, {case}, {description}.
Numbers are pre-formatted (two decimals, deviation one decimal, absolute).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from testpulse.anomaly.schema import Anomaly, AnomalyAlert, RootCause
from testpulse.core.enums import AlertLevel, AnomalyType, Severity

MAX_ROOT_CAUSES = 3
MAX_SUGGESTIONS = 3

DEFAULT_LEVELS: Dict[Severity, AlertLevel] = {
    Severity.LOW: AlertLevel.INFO,
    Severity.MEDIUM: AlertLevel.WARNING,
    Severity.HIGH: AlertLevel.CRITICAL,
    Severity.CRITICAL: AlertLevel.EMERGENCY,
}

# high and critical are capped one level below the default mapping
FLAKY_LEVELS: Dict[Severity, AlertLevel] = {
    Severity.LOW: AlertLevel.INFO,
    Severity.MEDIUM: AlertLevel.WARNING,
    Severity.HIGH: AlertLevel.WARNING,
    Severity.CRITICAL: AlertLevel.CRITICAL,
}


@dataclass(frozen=True)
class AlertTemplate:
    anomaly_type: AnomalyType
    title: str
    message: str
    level_mapping: Dict[Severity, AlertLevel] = field(default_factory=lambda: dict(DEFAULT_LEVELS))
    include_root_cause: bool = True
    include_suggestions: bool = True

    def level_for(self, severity: Severity) -> AlertLevel:
        return self.level_mapping.get(severity, DEFAULT_LEVELS[severity])


ALERT_TEMPLATES: Dict[AnomalyType, AlertTemplate] = {
    t.anomaly_type: t
    for t in [
        AlertTemplate(
            AnomalyType.DURATION_SPIKE,
            "Duration Spike Detected",
            "Execution time of {metric} spiked to {value} (baseline: {expected}). "
            "{deviation}σ above normal.",
        ),
        AlertTemplate(
            AnomalyType.PERFORMANCE_DEGRADATION,
            "Performance Degradation Detected",
            "{metric} moved to {value} (baseline: {expected}), {deviation}σ away from normal.",
        ),
        AlertTemplate(
            AnomalyType.FAILURE_SPIKE,
            "Failure Spike Detected",
            "Failures on {metric} reached {value} (baseline: {expected}). {description}.",
        ),
        AlertTemplate(
            AnomalyType.CONSECUTIVE_FAILURES,
            "Consecutive Failures Alert",
            "{count} consecutive test failures detected on {case}. Immediate attention required.",
        ),
        AlertTemplate(
            AnomalyType.SUCCESS_RATE_DROP,
            "Success Rate Drop Detected",
            "Success rate of {metric} dropped to {value} (baseline: {expected}). "
            "{deviation}σ below normal.",
        ),
        AlertTemplate(
            AnomalyType.PASS_RATE_DROP,
            "Pass Rate Drop Detected",
            "Pass rate of {metric} dropped to {value} (baseline: {expected}). "
            "{deviation}σ below normal.",
        ),
        AlertTemplate(
            AnomalyType.FLAKY_PATTERN,
            "Flaky Test Detected",
            'Test "{case}" shows flaky behavior. {description}.',
            level_mapping=dict(FLAKY_LEVELS),
            include_root_cause=False,
        ),
        AlertTemplate(
            AnomalyType.FLAKY_DETECTED,
            "Flaky Test Detected",
            'Test "{case}" shows flaky behavior. {description}.',
            level_mapping=dict(FLAKY_LEVELS),
            include_root_cause=False,
        ),
        AlertTemplate(
            AnomalyType.RESOURCE_ANOMALY,
            "Resource Anomaly Detected",
            "Unusual resource consumption: {metric} at {value} ({deviation}σ deviation).",
        ),
        AlertTemplate(
            AnomalyType.TREND_CHANGE,
            "Trend Change Detected",
            "Established trend changed for {metric}. Current: {value}, Expected: {expected}.",
        ),
        AlertTemplate(
            AnomalyType.SEASONAL_DEVIATION,
            "Seasonal Deviation Detected",
            "{metric} broke its seasonal pattern. Current: {value}, Expected: {expected}.",
        ),
    ]
}


def get_template(anomaly_type: AnomalyType) -> AlertTemplate:
    return ALERT_TEMPLATES[anomaly_type]


def format_root_causes(root_causes: Sequence[RootCause]) -> str:
    return "\n".join(
        f"{i}. [{rc.category}] {rc.description} ({rc.confidence:.0f}% confidence)"
        for i, rc in enumerate(root_causes[:MAX_ROOT_CAUSES], start=1)
    )


def format_suggestions(root_causes: Sequence[RootCause]) -> str:
    actions: List[str] = []
    for rc in root_causes:
        for suggestion in rc.suggestions:
            if suggestion.action not in actions:
                actions.append(suggestion.action)
    return "\n".join(f"{i}. {a}" for i, a in enumerate(actions[:MAX_SUGGESTIONS], start=1))


def render_message(template: AlertTemplate, anomaly: Anomaly) -> str:
    message = template.message.format(
        value=f"{anomaly.current_value:.2f}",
        expected=f"{anomaly.expected_value:.2f}",
        deviation=f"{abs(anomaly.deviation):.1f}",
        count=int(round(anomaly.current_value)),
        metric=anomaly.metric_name,
        case=anomaly.case_name or anomaly.case_id or "Unknown",
        description=anomaly.description.rstrip("."),
    )

    if anomaly.root_causes:
        if template.include_root_cause:
            message += f"\n\nRoot Causes:\n{format_root_causes(anomaly.root_causes)}"
        if template.include_suggestions:
            suggestions = format_suggestions(anomaly.root_causes)
            if suggestions:
                message += f"\n\nSuggested Actions:\n{suggestions}"
    return message


def render_alert(anomaly: Anomaly, created_at: int) -> AnomalyAlert:
    template = get_template(anomaly.type)
    return AnomalyAlert(
        anomaly_id=anomaly.id,
        level=template.level_for(anomaly.severity),
        title=template.title,
        message=render_message(template, anomaly),
        created_at=created_at,
    )
