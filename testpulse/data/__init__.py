"""
Data module: metric samples, preprocessing and seasonality.

Responsible for turning raw metric samples into clean series suitable for
baseline construction. Pipeline:

    Raw samples (DataPoint list or pandas DataFrame)
        ↓
    Preprocessing (testpulse/data/preprocessor.py)
        ↓
    Seasonality adjustment (testpulse/data/seasonality.py)
        ↓
    Ready for baseline construction (testpulse/anomaly/baselines.py)
"""

from testpulse.data.preprocessor import (
    DataPreprocessor,
    aggregate,
    calculate_percentile,
    calculate_stats,
    calculate_zscore,
    denormalize,
    detect_trend,
    detrend,
    fill_missing_values,
    normalize,
    points_from_frame,
    points_to_frame,
    remove_outliers,
    remove_outliers_iqr,
    smooth,
)
from testpulse.data.schema import (
    CycleInfo,
    DataPoint,
    ExecutionResult,
    PreprocessResult,
    SeasonalAnalysis,
    SeasonalityConfig,
    SeasonalPattern,
    SeriesStats,
    TrendResult,
)
from testpulse.data.seasonality import SeasonalityAnalyzer

__all__ = [
    # Schema
    "DataPoint",
    "ExecutionResult",
    "SeriesStats",
    "PreprocessResult",
    "TrendResult",
    "SeasonalPattern",
    "SeasonalityConfig",
    "SeasonalAnalysis",
    "CycleInfo",

    # Preprocessing
    "DataPreprocessor",
    "calculate_stats",
    "calculate_percentile",
    "calculate_zscore",
    "remove_outliers",
    "remove_outliers_iqr",
    "fill_missing_values",
    "normalize",
    "denormalize",
    "smooth",
    "detect_trend",
    "detrend",
    "aggregate",
    "points_from_frame",
    "points_to_frame",

    # Seasonality
    "SeasonalityAnalyzer",
]
