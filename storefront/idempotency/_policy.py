"""
Idempotency policy — behavior configuration.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum, auto
from typing import Any


# ═══════════════════════════════════════════════════════════════════════════════
# On Pending — Conflict Resolution Strategy
# ═══════════════════════════════════════════════════════════════════════════════


class OnPending(Enum):
    """
    What to do when a request arrives while another with the same key runs.

    WAIT: poll until the first attempt finishes, return its outcome.
          Use when: a double-submitted form should get the same answer.

    FAIL: immediately return CONFLICT.
    """

    WAIT = auto()
    FAIL = auto()


WAIT = OnPending.WAIT
FAIL = OnPending.FAIL


def _never(error: Any) -> bool:
    return False


def _always(error: Any) -> bool:
    return True


# ═══════════════════════════════════════════════════════════════════════════════
# Policy — Full Configuration
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Policy:
    """
    Idempotency policy configuration.

    Fluent builder pattern — chain methods to configure.

    Example:
        policy = (
            Policy()
            .with_ttl(hours=24)
            .with_on_pending(WAIT)
            .with_wait_timeout(seconds=60)
            .with_store_failed(when=lambda e: isinstance(e, PartialFailure))
        )

    Note: by default failures are not remembered, so the operation may be
    retried. persist_failed selects the errors that must be returned again
    instead of re-executing.
    """

    result_ttl: timedelta | None = None
    conflict_strategy: OnPending = OnPending.WAIT
    pending_wait_timeout: timedelta = timedelta(seconds=30)
    poll_interval: timedelta = timedelta(milliseconds=100)
    persist_failed: Callable[[Any], bool] = _never

    def with_ttl(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        hours: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """
        Set TTL for completed records.

        After TTL, operation can be re-executed.

        Example:
            .with_ttl(seconds=3600)
            .with_ttl(hours=24)
        """
        if delta is not None:
            ttl_val = delta
        else:
            total_seconds = (seconds or 0) + (minutes or 0) * 60 + (hours or 0) * 3600
            ttl_val = timedelta(seconds=total_seconds) if total_seconds > 0 else None
        return replace(self, result_ttl=ttl_val)

    def with_on_pending(self, strategy: OnPending) -> Policy:
        return replace(self, conflict_strategy=strategy)

    def with_wait_timeout(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """Only applies when on_pending=WAIT."""
        timeout = delta if delta else timedelta(seconds=seconds or 30)
        return replace(self, pending_wait_timeout=timeout)

    def with_poll_interval(self, *, seconds: float) -> Policy:
        return replace(self, poll_interval=timedelta(seconds=seconds))

    def with_store_failed(
        self,
        store: bool = True,
        *,
        when: Callable[[Any], bool] | None = None,
    ) -> Policy:
        """
        Whether to remember failed results.

        Example:
            .with_store_failed()                                  # every error
            .with_store_failed(when=lambda e: e.kind == PARTIAL)  # some errors
            .with_store_failed(False)                             # allow retries
        """
        if not store:
            return replace(self, persist_failed=_never)
        return replace(self, persist_failed=when or _always)

    def should_persist(self, error: Any) -> bool:
        return self.persist_failed(error)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "OnPending",
    "WAIT",
    "FAIL",
    "Policy",
)
