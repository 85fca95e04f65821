"""
Application configuration for TestPulse.

Provides environment-aware settings with conservative defaults. Every
threshold, window and weight used by the pipeline is configurable so that no
"magic numbers" live in the detection code.

Environment overrides use the TESTPULSE_ prefix and "__" for nested sections,
e.g. TESTPULSE_ALERTS__MAX_ALERTS_PER_WINDOW=10.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, FrozenSet, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import Algorithm, BaselineMethod, Sensitivity, Severity

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

SENSITIVITY_THRESHOLDS: Dict[Sensitivity, float] = {
	Sensitivity.LOW: 4.0,
	Sensitivity.MEDIUM: 3.0,
	Sensitivity.HIGH: 2.0,
}


class PreprocessConfig(BaseModel):
	"""
	Cleaning steps applied to raw metric samples.

	Notes:
	- outlier_threshold is a z-score cut-off (population std).
	- fill_missing interpolates gaps larger than 1.5x the median interval.
	- remove_zeros counts dropped zeros as removed outliers.
	"""

	remove_outliers: bool = True
	outlier_threshold: float = Field(3.0, gt=0.0)
	fill_missing: bool = True
	fill_method: Literal["linear", "previous", "mean"] = "linear"
	normalize: bool = False
	normalize_method: Literal["zscore", "minmax"] = "zscore"
	remove_zeros: bool = False


class BaselineSettings(BaseModel):
	"""
	Defaults for baseline construction.

	Notes:
	- window_size: number of most recent points used by moving_average.
	- smoothing_alpha: decay factor for exponential smoothing (higher reacts faster).
	- max_age_ms: a baseline older than this needs a rebuild.
	"""

	method: BaselineMethod = BaselineMethod.MOVING_AVERAGE
	window_size: int = Field(30, ge=1)
	exclude_anomalies: bool = True
	smoothing_alpha: float = Field(0.3, gt=0.0, lt=1.0)
	max_age_ms: int = Field(DAY_MS, gt=0)
	seasonality_min_points: int = Field(14, ge=2)
	seasonality_strength_threshold: float = Field(0.3, ge=0.0, le=1.0)


class DetectionThresholds(BaseModel):
	"""Thresholds for pass/fail pattern detection."""

	consecutive_failures: int = Field(3, ge=1)
	flaky_threshold: float = Field(0.3, ge=0.0, le=1.0)
	flaky_min_executions: int = Field(10, ge=2)
	pass_rate_drop: float = Field(0.2, ge=0.0, le=1.0)
	pass_rate_window: int = Field(10, ge=1)


class DetectionConfig(BaseModel):
	"""
	Per-call detection settings. Immutable once constructed.

	Notes:
	- algorithms: enabled detectors; evaluated in Algorithm declaration order.
	- sensitivity: maps to the z threshold (low 4, medium 3, high 2).
	- min_data_points: history required when no baseline exists.
	"""

	model_config = ConfigDict(frozen=True)

	enabled: bool = True
	algorithms: FrozenSet[Algorithm] = Field(
		default_factory=lambda: frozenset(
			{
				Algorithm.ZSCORE,
				Algorithm.MODIFIED_ZSCORE,
				Algorithm.IQR,
				Algorithm.MOVING_AVERAGE,
			}
		)
	)
	sensitivity: Sensitivity = Sensitivity.MEDIUM
	min_data_points: int = Field(10, ge=1)
	detection_window_days: int = Field(30, ge=1)
	thresholds: DetectionThresholds = DetectionThresholds()
	regression_lookback_ms: int = Field(7 * DAY_MS, gt=0)
	stale_after_ms: int = Field(7 * DAY_MS, gt=0)

	@property
	def threshold(self) -> float:
		return SENSITIVITY_THRESHOLDS[self.sensitivity]


class SeverityWeights(BaseModel):
	"""
	Weights of the additive severity factors.

	Defaults sum to 1.0; regression and consecutive bonuses are fixed points
	added on top.
	"""

	deviation: float = Field(0.35, ge=0.0, le=1.0)
	duration: float = Field(0.2, ge=0.0, le=1.0)
	frequency: float = Field(0.15, ge=0.0, le=1.0)
	impact: float = Field(0.3, ge=0.0, le=1.0)


class SeverityConfig(BaseModel):
	"""
	Severity scoring policy.

	Notes:
	- type_multipliers scale the additive subtotal; unknown types use 1.0.
	- critical/high/medium_score are the bucket cut-offs on the 0-100 score.
	"""

	weights: SeverityWeights = SeverityWeights()
	regression_penalty: float = Field(15.0, ge=0.0)
	consecutive_bonus: float = Field(10.0, ge=0.0)
	type_multipliers: Dict[str, float] = Field(
		default_factory=lambda: {
			"duration_spike": 1.0,
			"failure_spike": 1.3,
			"flaky_pattern": 0.9,
			"performance_degradation": 1.1,
			"success_rate_drop": 1.2,
			"resource_anomaly": 1.0,
			"trend_change": 0.8,
			"seasonal_deviation": 0.7,
		}
	)
	critical_score: float = Field(80.0, ge=0.0, le=100.0)
	high_score: float = Field(60.0, ge=0.0, le=100.0)
	medium_score: float = Field(40.0, ge=0.0, le=100.0)
	critical_sigma: float = Field(4.0, gt=0.0)
	high_sigma: float = Field(3.0, gt=0.0)
	medium_sigma: float = Field(2.0, gt=0.0)


class AlertConfig(BaseModel):
	"""
	Alert orchestration policy. Hot-reloadable through AlertTrigger.update_config.

	Notes:
	- deduplication_window_ms: same title and anomaly-id prefix inside this
	  window is a duplicate.
	- convergence_window_ms: idle time after which a title group resets; an
	  alert arriving exactly this long after the last one still joins it.
	- max_alerts_per_window: alerts beyond this count converge and arm a cooldown.
	"""

	model_config = ConfigDict(frozen=True)

	enabled: bool = True
	min_severity: Severity = Severity.MEDIUM
	deduplication_window_ms: int = Field(5 * 60 * 1000, ge=0)
	convergence_window_ms: int = Field(15 * 60 * 1000, ge=0)
	max_alerts_per_window: int = Field(5, ge=1)
	cooldown_period_ms: int = Field(30 * 60 * 1000, ge=0)
	health_drop_threshold: float = Field(10.0, ge=0.0)
	health_critical_drop: float = Field(20.0, ge=0.0)


class Config(BaseSettings):
	"""
	Global configuration with environment overrides.
	"""

	model_config = SettingsConfigDict(
		env_prefix="TESTPULSE_",
		env_file=".env",
		env_nested_delimiter="__",
		extra="ignore",
	)

	log_level: str = Field("INFO", description="Default logging level")
	logs_dir: Path = Field(Path("logs"), description="Directory for log files")
	log_to_file: bool = Field(False, description="Also write rotated log files")

	preprocess: PreprocessConfig = PreprocessConfig()
	baselines: BaselineSettings = BaselineSettings()
	detection: DetectionConfig = DetectionConfig()
	severity: SeverityConfig = SeverityConfig()
	alerts: AlertConfig = AlertConfig()

	def model_post_init(self, __context: object) -> None:
		if self.log_to_file:
			self.logs_dir.mkdir(parents=True, exist_ok=True)
