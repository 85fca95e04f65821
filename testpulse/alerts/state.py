"""
Transient alert state.

ExpiringMap is a small key -> (value, expiry) cache driven by an injected
clock. Entries past their expiry are invisible to reads immediately but are
only dropped from memory by an explicit ``purge_expired()``, so cleanup can
be scheduled and tested without real delays.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from testpulse.anomaly.schema import AnomalyAlert
from testpulse.core.clock import Clock, system_clock

V = TypeVar("V")


class ExpiringMap(Generic[V]):
    """
    Map whose entries are live while ``clock() < expires_at``.

    Not thread-safe.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock = clock or system_clock
        self._entries: Dict[str, Tuple[V, int]] = {}

    def _live(self, key: str) -> Optional[Tuple[V, int]]:
        entry = self._entries.get(key)
        if entry is None or self.clock() >= entry[1]:
            return None
        return entry

    def get(self, key: str) -> Optional[V]:
        entry = self._live(key)
        return entry[0] if entry else None

    def expires_at(self, key: str) -> Optional[int]:
        entry = self._live(key)
        return entry[1] if entry else None

    def set(
        self,
        key: str,
        value: V,
        ttl_ms: Optional[int] = None,
        expires_at: Optional[int] = None,
    ) -> None:
        """Store value until expires_at, or for ttl_ms from now."""
        if expires_at is None:
            if ttl_ms is None:
                raise ValueError("Either ttl_ms or expires_at is required")
            expires_at = self.clock() + ttl_ms
        self._entries[key] = (value, expires_at)

    def pop(self, key: str) -> Optional[V]:
        entry = self._entries.pop(key, None)
        return entry[0] if entry else None

    def purge_expired(self) -> int:
        now = self.clock()
        expired = [k for k, (_, until) in self._entries.items() if now >= until]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def items(self) -> List[Tuple[str, V]]:
        now = self.clock()
        return [(k, v) for k, (v, until) in self._entries.items() if now < until]

    def values(self) -> List[V]:
        return [v for _, v in self.items()]

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._live(key) is not None

    def __len__(self) -> int:
        return len(self.items())

    def __iter__(self) -> Iterator[str]:
        return iter([k for k, _ in self.items()])


@dataclass
class ConvergenceGroup:
    """Alerts sharing one title inside a rolling convergence window."""

    key: str
    first_seen: int
    last_seen: int
    count: int = 1
    alerts: List[AnomalyAlert] = field(default_factory=list)

    def add(self, alert: AnomalyAlert, now: int) -> None:
        self.alerts.append(alert)
        self.last_seen = now
        self.count += 1
