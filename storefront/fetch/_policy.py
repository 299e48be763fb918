"""
Fetch policy — TTL, dedup and retry configuration.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any

from combinators import RetryPolicy


def is_transient(error: Any) -> bool:
    """Default retry predicate: errors that say repeating may help."""
    return bool(getattr(error, "transient", False))


def never(error: Any) -> bool:
    return False


# ═══════════════════════════════════════════════════════════════════════════════
# Policy — Full Configuration
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class FetchPolicy:
    """
    Fetch policy configuration.

    Fluent builder pattern — chain methods to configure.

    Example:
        policy = (
            FetchPolicy()
            .with_ttl(seconds=60)
            .with_retries(3)
            .with_backoff(1.0)
        )

    Note: Immutable — each method returns new FetchPolicy.

    max_retries: retries after the first attempt; total attempts is
        max_retries + 1.
    Backoff before retry n (0-based) is backoff_initial * 2^n seconds,
    capped at backoff_max.
    """

    ttl: timedelta = timedelta(minutes=5)
    dedupe: bool = True
    max_retries: int = 3
    backoff_initial: float = 1.0
    backoff_max: float = 30.0
    retry_on: Callable[[Any], bool] = is_transient

    def with_ttl(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        delta: timedelta | None = None,
    ) -> FetchPolicy:
        """
        Set TTL for cached values.

        Example:
            .with_ttl(seconds=30)
            .with_ttl(delta=timedelta(minutes=5))
        """
        if delta is not None:
            ttl = delta
        else:
            ttl = timedelta(seconds=(seconds or 0) + (minutes or 0) * 60)
        return replace(self, ttl=ttl)

    def with_dedupe(self, dedupe: bool = True) -> FetchPolicy:
        return replace(self, dedupe=dedupe)

    def with_retries(self, max_retries: int) -> FetchPolicy:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        return replace(self, max_retries=max_retries)

    def with_backoff(self, initial: float, maximum: float | None = None) -> FetchPolicy:
        return replace(
            self,
            backoff_initial=initial,
            backoff_max=maximum if maximum is not None else max(self.backoff_max, initial),
        )

    def with_retry_on(self, predicate: Callable[[Any], bool]) -> FetchPolicy:
        """
        Restrict which errors are retried.

        Example:
            # POST that must not be repeated once it reached the server
            .with_retry_on(lambda e: is_transient(e) and not e.request_sent)
        """
        return replace(self, retry_on=predicate)

    def no_retry(self) -> FetchPolicy:
        return replace(self, max_retries=0, retry_on=never)

    def retry_policy(self) -> RetryPolicy[Any]:
        return RetryPolicy.exponential(
            times=self.max_retries + 1,
            initial=self.backoff_initial,
            multiplier=2.0,
            max_delay=max(self.backoff_max, self.backoff_initial),
            retry_on=self.retry_on,
        )


__all__ = (
    "is_transient",
    "never",
    "FetchPolicy",
)
