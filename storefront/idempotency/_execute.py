"""
Idempotent execution — the record state machine.

    get(key)
      ├── COMPLETED ─────────────▶ Ok(value, from_cache=True)
      ├── FAILED ────────────────▶ Error(EXECUTION, from_cache=True)
      ├── PENDING ── WAIT ──poll─▶ outcome of the running attempt
      │          └── FAIL ───────▶ Error(CONFLICT)
      └── none ── set_pending ──▶ execute
                                   ├── Ok  → set_completed
                                   └── Err → set_failed | delete
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Awaitable
from dataclasses import dataclass
from typing import Any

import structlog
from kungfu import Result, Ok, Error

from storefront.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from storefront.idempotency._store import StoreError, StoreAny
from storefront.idempotency._policy import Policy, OnPending


logger = structlog.get_logger(__name__)

type Outcome = Result[IdempotencyResult[Any], IdempotencyError[Any]]


# ═══════════════════════════════════════════════════════════════════════════════
# Spec
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class IdempotencySpec:
    """Everything one idempotent execution needs."""

    key: str
    input_value: Any
    operation: Callable[[Any], Awaitable[Result[Any, Any]]]
    store: StoreAny
    policy: Policy


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _store_failed(err: StoreError) -> Outcome:
    return Error(IdempotencyError(
        kind=IdempotencyErrorKind.STORE_ERROR,
        message=err.message,
        original_error=err.cause,
    ))


def _from_record(spec: IdempotencySpec, record: IdempotencyRecord[Any, Any]) -> Outcome:
    if record.state == RecordState.COMPLETED:
        logger.info("idempotent_replay", key=spec.key)
        return Ok(IdempotencyResult(value=record.value, from_cache=True, key=spec.key))
    logger.info("idempotent_replay_failure", key=spec.key)
    return Error(IdempotencyError(
        kind=IdempotencyErrorKind.EXECUTION,
        message="Cached failure",
        original_error=record.error,
        from_cache=True,
    ))


# ═══════════════════════════════════════════════════════════════════════════════
# Pending
# ═══════════════════════════════════════════════════════════════════════════════


async def _wait_for_pending(spec: IdempotencySpec) -> Outcome:
    """Poll until the running attempt records an outcome."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + spec.policy.pending_wait_timeout.total_seconds()
    interval = spec.policy.poll_interval.total_seconds()

    while loop.time() < deadline:
        await asyncio.sleep(interval)

        match await spec.store.get(spec.key):
            case Error(err):
                return _store_failed(err)
            case Ok(None):
                # Attempt failed with an error that is not remembered.
                return Error(IdempotencyError(
                    kind=IdempotencyErrorKind.ABANDONED,
                    message="The concurrent attempt failed; try again",
                ))
            case Ok(record) if record.state != RecordState.PENDING:
                return _from_record(spec, record)
            case Ok(_):
                continue

    return Error(IdempotencyError(
        kind=IdempotencyErrorKind.TIMEOUT,
        message="Timeout waiting for pending operation",
    ))


async def _on_pending(spec: IdempotencySpec) -> Outcome:
    if spec.policy.conflict_strategy == OnPending.FAIL:
        return Error(IdempotencyError(
            kind=IdempotencyErrorKind.CONFLICT,
            message=f"Pending conflict: {spec.key}",
        ))
    logger.info("idempotent_wait", key=spec.key)
    return await _wait_for_pending(spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Execute
# ═══════════════════════════════════════════════════════════════════════════════


async def _execute_new(spec: IdempotencySpec) -> Outcome:
    match await spec.store.set_pending(spec.key, spec.policy.result_ttl):
        case Error(err):
            return _store_failed(err)
        case Ok(False):
            # Lost the race to another attempt.
            return await run_idempotent(spec)
        case Ok(_):
            pass

    try:
        result = await spec.operation(spec.input_value)
    except Exception as e:
        await spec.store.delete(spec.key)
        logger.exception("idempotent_operation_crashed", key=spec.key)
        return Error(IdempotencyError(
            kind=IdempotencyErrorKind.EXECUTION,
            message=str(e),
            original_error=e,
        ))
    except BaseException:
        # Cancelled: leave no PENDING record behind.
        await asyncio.shield(spec.store.delete(spec.key))
        raise

    match result:
        case Ok(value):
            match await spec.store.set_completed(spec.key, value, spec.policy.result_ttl):
                case Error(err):
                    return _store_failed(err)
                case Ok(_):
                    return Ok(IdempotencyResult(value=value, from_cache=False, key=spec.key))
        case Error(err):
            if spec.policy.should_persist(err):
                ttl = spec.policy.result_ttl
                await spec.store.set_failed(spec.key, err, ttl)
                logger.warning("idempotent_failure_recorded", key=spec.key)
            else:
                await spec.store.delete(spec.key)
            return Error(IdempotencyError(
                kind=IdempotencyErrorKind.EXECUTION,
                message="Operation returned Error",
                original_error=err,
            ))


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


async def run_idempotent(spec: IdempotencySpec) -> Outcome:
    """Execute spec.operation at most once per live record for spec.key."""
    match await spec.store.get(spec.key):
        case Error(err):
            return _store_failed(err)
        case Ok(None):
            return await _execute_new(spec)
        case Ok(record) if record.state == RecordState.PENDING:
            return await _on_pending(spec)
        case Ok(record):
            return _from_record(spec, record)


__all__ = (
    "IdempotencySpec",
    "Outcome",
    "run_idempotent",
)
