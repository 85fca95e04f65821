"""
Pass/fail pattern detection over execution histories.

Works on ExecutionResult series (any order; each function sorts by
timestamp itself):

- consecutive failures: the unbroken failure streak ending at the most
  recent run
- flakiness: alternations between pass and fail over n-1 transitions,
  only reported when the pass rate lies strictly between 20% and 80%
- pass-rate change: the last window compared with the window before it
- failure trend: slope of per-window failure rates
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from testpulse.data.schema import ExecutionResult

INTERMITTENT_LOOKBACK = 10
TREND_SLOPE = 0.05


@dataclass(frozen=True)
class ConsecutivePatternResult:
    is_anomaly: bool
    consecutive_failures: int
    consecutive_successes: int
    pattern: str  # consecutive_failures | intermittent | stable | recovering
    failure_streak: List[ExecutionResult] = field(default_factory=list)


@dataclass(frozen=True)
class FlakyPatternResult:
    is_flaky: bool
    flaky_score: float
    alternations: int
    pass_rate: float


@dataclass(frozen=True)
class PassRateChange:
    has_change: bool
    previous_rate: float
    current_rate: float
    change: float


@dataclass(frozen=True)
class FailureTrend:
    trend: str  # increasing | decreasing | stable
    slope: float


def detect_consecutive_failures(
    results: Sequence[ExecutionResult],
    failure_threshold: int = 3,
    success_threshold: int = 2,
) -> ConsecutivePatternResult:
    """
    Count the newest unbroken streak and classify the recent pattern.

    Only one of the two counters can be non-zero: the streak stops at the
    first result of the other kind.
    """
    if not results:
        return ConsecutivePatternResult(False, 0, 0, "stable")

    newest_first = sorted(results, key=lambda r: r.timestamp, reverse=True)
    failures = 0
    successes = 0
    streak: List[ExecutionResult] = []

    for result in newest_first:
        if not result.passed and successes == 0:
            failures += 1
            streak.append(result)
        elif result.passed and failures == 0:
            successes += 1
        else:
            break

    if failures >= failure_threshold:
        pattern = "consecutive_failures"
    elif successes >= success_threshold:
        pattern = "stable"
    elif successes > 0 and len(newest_first) > successes:
        # short success streak that directly follows a failure
        pattern = "recovering"
    else:
        recent = newest_first[:INTERMITTENT_LOOKBACK]
        fail_rate = sum(1 for r in recent if not r.passed) / len(recent)
        pattern = "intermittent" if 0.3 < fail_rate < 0.7 else "stable"

    return ConsecutivePatternResult(
        is_anomaly=failures >= failure_threshold,
        consecutive_failures=failures,
        consecutive_successes=successes,
        pattern=pattern,
        failure_streak=streak,
    )


def detect_flaky_pattern(
    results: Sequence[ExecutionResult],
    min_executions: int = 5,
    flaky_threshold: float = 0.3,
) -> FlakyPatternResult:
    if len(results) < min_executions:
        return FlakyPatternResult(False, 0.0, 0, 0.0)

    ordered = sorted(results, key=lambda r: r.timestamp)
    alternations = sum(
        1 for prev, cur in zip(ordered, ordered[1:]) if prev.passed != cur.passed
    )
    transitions = len(ordered) - 1
    score = alternations / transitions if transitions > 0 else 0.0
    pass_rate = sum(1 for r in ordered if r.passed) / len(ordered)

    return FlakyPatternResult(
        is_flaky=score >= flaky_threshold and 0.2 < pass_rate < 0.8,
        flaky_score=score,
        alternations=alternations,
        pass_rate=pass_rate,
    )


def _pass_rate(window: Sequence[ExecutionResult]) -> float:
    return sum(1 for r in window if r.passed) / len(window)


def detect_pass_rate_change(
    results: Sequence[ExecutionResult],
    window_size: int = 10,
    change_threshold: float = 0.3,
) -> PassRateChange:
    """Needs at least two full windows; change is current minus previous rate."""
    if len(results) < window_size * 2:
        return PassRateChange(False, 0.0, 0.0, 0.0)

    ordered = sorted(results, key=lambda r: r.timestamp)
    split = len(ordered) - window_size
    previous = _pass_rate(ordered[split - window_size: split])
    current = _pass_rate(ordered[split:])
    change = current - previous

    return PassRateChange(
        has_change=abs(change) >= change_threshold,
        previous_rate=previous,
        current_rate=current,
        change=change,
    )


def get_failure_trend(
    results: Sequence[ExecutionResult], window_size: int = 5
) -> FailureTrend:
    if len(results) < window_size * 2:
        return FailureTrend("stable", 0.0)

    ordered = sorted(results, key=lambda r: r.timestamp)
    rates = [
        1 - _pass_rate(ordered[end - window_size: end])
        for end in range(window_size, len(ordered) + 1, window_size)
    ]

    n = len(rates)
    x_mean = (n - 1) / 2
    y_mean = sum(rates) / n
    numerator = sum((i - x_mean) * (rate - y_mean) for i, rate in enumerate(rates))
    denominator = sum((i - x_mean) ** 2 for i in range(n))
    slope = numerator / denominator if denominator != 0 else 0.0

    if slope > TREND_SLOPE:
        trend = "increasing"
    elif slope < -TREND_SLOPE:
        trend = "decreasing"
    else:
        trend = "stable"
    return FailureTrend(trend, slope)
