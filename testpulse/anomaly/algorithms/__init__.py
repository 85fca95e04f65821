"""
Stateless detection algorithms.

Each function takes a candidate value plus a baseline or a raw history and
returns a small result object carrying the verdict and a deviation measure.
"""

from .consecutive import (
    ConsecutivePatternResult,
    FailureTrend,
    FlakyPatternResult,
    PassRateChange,
    detect_consecutive_failures,
    detect_flaky_pattern,
    detect_pass_rate_change,
    get_failure_trend,
)
from .iqr import (
    IQRResult,
    IQRStats,
    calculate_iqr_stats,
    detect_iqr_anomalies,
    detect_iqr_anomaly,
    get_anomaly_percentage,
)
from .moving_average import (
    BollingerBands,
    BollingerResult,
    MovingAverageResult,
    calculate_bollinger_bands,
    calculate_ema,
    calculate_moving_std,
    calculate_sma,
    detect_bollinger_anomaly,
    detect_bollinger_band_anomalies,
    detect_moving_average_anomalies,
    detect_moving_average_anomaly,
)
from .zscore import (
    MadStats,
    ZScoreResult,
    calculate_mad,
    calculate_modified_zscore,
    detect_modified_zscore_anomaly,
    detect_zscore_anomalies,
    detect_zscore_anomaly,
)

__all__ = [
	"ZScoreResult",
	"MadStats",
	"detect_zscore_anomaly",
	"detect_zscore_anomalies",
	"calculate_mad",
	"calculate_modified_zscore",
	"detect_modified_zscore_anomaly",
	"IQRStats",
	"IQRResult",
	"calculate_iqr_stats",
	"detect_iqr_anomaly",
	"detect_iqr_anomalies",
	"get_anomaly_percentage",
	"MovingAverageResult",
	"BollingerBands",
	"BollingerResult",
	"calculate_sma",
	"calculate_ema",
	"calculate_moving_std",
	"detect_moving_average_anomaly",
	"detect_moving_average_anomalies",
	"calculate_bollinger_bands",
	"detect_bollinger_anomaly",
	"detect_bollinger_band_anomalies",
	"ConsecutivePatternResult",
	"FlakyPatternResult",
	"PassRateChange",
	"FailureTrend",
	"detect_consecutive_failures",
	"detect_flaky_pattern",
	"detect_pass_rate_change",
	"get_failure_trend",
]
