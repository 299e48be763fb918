"""
Storefront configuration.

    config = (
        StorefrontConfig()
        .with_base_url("https://shop.example.com/api")
        .with_timeout(seconds=5)
        .with_cache_ttl(seconds=60)
    )

    config = StorefrontConfig.from_env()
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta


DEFAULT_BASE_URL = "http://localhost:3000/api"


# ═══════════════════════════════════════════════════════════════════════════════
# Config — Immutable, Fluent
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StorefrontConfig:
    """
    Immutable client configuration.

    Note: each with_* returns a new config, so a base config can be shared
    between clients and specialised per use.

    cache_ttl: lifetime of cached reads (cart, checkout session, lookups).
    max_retries: retries after the first attempt for transient failures.
    backoff_initial: first retry delay in seconds, doubled per attempt.
    storage_url: SQLAlchemy URL for durable client storage; None keeps
        session identity and drafts in memory.
    """

    base_url: str = DEFAULT_BASE_URL
    timeout: timedelta = timedelta(seconds=10)
    session_header: str = "x-session-id"
    session_storage_key: str = "cart-session-id"
    cache_ttl: timedelta = timedelta(minutes=5)
    max_retries: int = 3
    backoff_initial: float = 1.0
    backoff_max: float = 30.0
    storage_url: str | None = None

    def with_base_url(self, url: str) -> StorefrontConfig:
        return replace(self, base_url=url.rstrip("/"))

    def with_timeout(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> StorefrontConfig:
        """
        Set per-request timeout.

        Example:
            .with_timeout(seconds=5)
        """
        timeout = delta if delta else timedelta(seconds=seconds or 10)
        return replace(self, timeout=timeout)

    def with_cache_ttl(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        delta: timedelta | None = None,
    ) -> StorefrontConfig:
        """
        Set TTL for cached reads.

        Example:
            .with_cache_ttl(minutes=5)
            .with_cache_ttl(seconds=0)   # every read goes to the network
        """
        if delta is not None:
            ttl = delta
        else:
            ttl = timedelta(seconds=(seconds or 0) + (minutes or 0) * 60)
        return replace(self, cache_ttl=ttl)

    def with_retries(self, max_retries: int) -> StorefrontConfig:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        return replace(self, max_retries=max_retries)

    def with_backoff(self, initial: float, maximum: float | None = None) -> StorefrontConfig:
        """
        Set retry backoff: initial * 2^attempt seconds, capped at maximum.

        Example:
            .with_backoff(0.5, maximum=10)
            .with_backoff(0)   # retry immediately (tests)
        """
        return replace(
            self,
            backoff_initial=initial,
            backoff_max=maximum if maximum is not None else max(self.backoff_max, initial),
        )

    def with_storage_url(self, url: str | None) -> StorefrontConfig:
        return replace(self, storage_url=url)

    def with_session_header(self, header: str) -> StorefrontConfig:
        return replace(self, session_header=header.lower())

    @classmethod
    def from_env(cls, prefix: str = "STOREFRONT_") -> StorefrontConfig:
        """
        Build config from environment variables.

        Reads {prefix}BASE_URL, TIMEOUT, CACHE_TTL, MAX_RETRIES,
        BACKOFF_INITIAL and STORAGE_URL; unset variables keep defaults.
        """
        config = cls()

        def env(name: str) -> str | None:
            value = os.getenv(prefix + name)
            return value if value not in (None, "") else None

        if (url := env("BASE_URL")) is not None:
            config = config.with_base_url(url)
        if (timeout := env("TIMEOUT")) is not None:
            config = config.with_timeout(seconds=float(timeout))
        if (ttl := env("CACHE_TTL")) is not None:
            config = config.with_cache_ttl(seconds=float(ttl))
        if (retries := env("MAX_RETRIES")) is not None:
            config = config.with_retries(int(retries))
        if (backoff := env("BACKOFF_INITIAL")) is not None:
            config = config.with_backoff(float(backoff))
        if (storage := env("STORAGE_URL")) is not None:
            config = config.with_storage_url(storage)
        return config


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "DEFAULT_BASE_URL",
    "StorefrontConfig",
)
