"""
Pytest configuration and shared fixtures.

Provides a manual clock, an in-memory store and sample metric histories for
unit and integration tests.
"""

import pytest
from typing import List
import pandas as pd

from testpulse.anomaly.schema import Baseline
from testpulse.anomaly.storage import InMemoryAnomalyStore
from testpulse.core.clock import ManualClock
from testpulse.core.config import HOUR_MS
from testpulse.data.schema import DataPoint, ExecutionResult

# 2025-02-03 00:00:00 UTC, a Monday
T0 = 1738540800000


@pytest.fixture
def clock() -> ManualClock:
    """
    Fixture providing a settable clock starting at T0.

    Advance it explicitly to move dedup, convergence and cooldown windows.
    """
    return ManualClock(T0)


@pytest.fixture
def store() -> InMemoryAnomalyStore:
    return InMemoryAnomalyStore()


@pytest.fixture
def hourly_points() -> List[DataPoint]:
    """
    Fixture providing 48 hourly samples oscillating around 100.

    Values cycle 98, 99, 100, 101, 102 so the series has a small, stable spread.
    """
    return [
        DataPoint(timestamp=T0 + i * HOUR_MS, value=98.0 + (i % 5))
        for i in range(48)
    ]


@pytest.fixture
def metric_frame(hourly_points) -> pd.DataFrame:
    """
    Fixture providing the hourly samples as a pandas DataFrame.

    Uses a UTC DatetimeIndex and a ``value`` column, the shape metric
    exports usually arrive in.
    """
    df = pd.DataFrame(
        {
            "timestamp": pd.to_datetime([p.timestamp for p in hourly_points], unit="ms", utc=True),
            "value": [p.value for p in hourly_points],
        }
    )
    df.set_index("timestamp", inplace=True)
    return df


@pytest.fixture
def steady_baseline() -> Baseline:
    return Baseline(
        mean=95.0, std=2.0, min=90.0, max=99.0, sample_count=30, period="4w", last_updated=T0
    )


def make_results(pattern: str, start: int = T0, step: int = 60_000) -> List[ExecutionResult]:
    """Execution results from a string of 'P'/'F', oldest first."""
    return [
        ExecutionResult(timestamp=start + i * step, passed=ch == "P")
        for i, ch in enumerate(pattern)
    ]


def pytest_configure(config):
    """
    Pytest hook for custom configuration.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (deferred CI)"
    )
