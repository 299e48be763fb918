"""
Fetch cache types.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum, auto

# ═══════════════════════════════════════════════════════════════════════════════
# Entry State
# ═══════════════════════════════════════════════════════════════════════════════


class EntryState(Enum):
    """
    Lifecycle of a cached value.

        FRESH ──invalidate/ttl──▶ STALE ──refetch──▶ PENDING ──ok──▶ FRESH
                                                             └─err──▶ STALE
    """

    FRESH = auto()
    STALE = auto()
    PENDING = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Entry
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheEntry[T]:
    """
    One cached value.

    timestamp: clock reading (monotonic seconds) of the successful fetch.
    """

    key: str
    value: T
    timestamp: float
    ttl: timedelta
    state: EntryState = EntryState.FRESH

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_fresh(self, now: float) -> bool:
        return self.state == EntryState.FRESH and self.age(now) < self.ttl.total_seconds()

    def with_state(self, state: EntryState) -> CacheEntry[T]:
        return replace(self, state=state)


__all__ = (
    "EntryState",
    "CacheEntry",
)
