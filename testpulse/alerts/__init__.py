"""
Alerts module: rendering and dedup/convergence/cooldown gating of alerts.
"""

from .state import ConvergenceGroup, ExpiringMap
from .templates import ALERT_TEMPLATES, AlertTemplate, get_template, render_alert
from .trigger import AlertNotification, AlertStats, AlertTrigger, convergence_key, dedup_key

__all__ = [
	"AlertTrigger",
	"AlertNotification",
	"AlertStats",
	"AlertTemplate",
	"ALERT_TEMPLATES",
	"get_template",
	"render_alert",
	"ConvergenceGroup",
	"ExpiringMap",
	"dedup_key",
	"convergence_key",
]
