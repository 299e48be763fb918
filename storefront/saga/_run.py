"""
Saga execution with automatic rollback.
"""

from __future__ import annotations

from typing import Any

import structlog
from kungfu import Result, Ok, Error

from storefront.saga._types import (
    SagaStep,
    SagaResult,
    SagaError,
    Then,
    Compensator,
)


logger = structlog.get_logger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# Recorded Compensator
# ═══════════════════════════════════════════════════════════════════════════════

type RecordedCompensator = tuple[str, Any, Compensator[Any]]

# ═══════════════════════════════════════════════════════════════════════════════
# run_step() — Execute single step
# ═══════════════════════════════════════════════════════════════════════════════

async def run_step[T, E](
    step: SagaStep[T, E],
    compensators: list[RecordedCompensator],
) -> Result[T, E]:
    """Execute single step, recording compensator on success."""
    result = await step.action
    match result:
        case Ok(value):
            if step.compensate is not None:
                compensators.append((step.name, value, step.compensate))
            return Ok(value)
        case Error(e):
            return Error(e)


# ═══════════════════════════════════════════════════════════════════════════════
# run_compensators() — Rollback
# ═══════════════════════════════════════════════════════════════════════════════

async def run_compensators(
    compensators: list[RecordedCompensator],
) -> tuple[int, int]:
    """
    Run compensators in reverse. Returns (run, failed).

    Note: a failing compensator does not stop the others; it is logged and
    counted in SagaError.compensators_failed.
    """
    comp_run = 0
    comp_failed = 0

    for name, value, comp in reversed(compensators):
        try:
            await comp(value)
            comp_run += 1
        except Exception:
            logger.exception("compensation_failed", step=name)
            comp_failed += 1

    return comp_run, comp_failed


# ═══════════════════════════════════════════════════════════════════════════════
# run() — Execute Saga Step
# ═══════════════════════════════════════════════════════════════════════════════

async def run[T, E](
    saga: SagaStep[T, E],
) -> Result[SagaResult[T], SagaError[E]]:
    """
    Execute saga step with automatic rollback on failure.

    Example:
        match await S.run(S.from_async(charge, on_error=str)):
            case Ok(r):
                print(r.value)
            case Error(e):
                print(e.error)
    """
    compensators: list[RecordedCompensator] = []

    result = await run_step(saga, compensators)

    match result:
        case Ok(value):
            return Ok(SagaResult(
                value=value,
                steps_executed=1,
                compensators_recorded=len(compensators),
            ))

        case Error(error):
            comp_run, comp_failed = await run_compensators(compensators)

            return Error(SagaError(
                error=error,
                step_failed=1,
                compensators_run=comp_run,
                compensators_failed=comp_failed,
            ))


# ═══════════════════════════════════════════════════════════════════════════════
# run_chain() — Execute Then chain
# ═══════════════════════════════════════════════════════════════════════════════

async def run_chain[T, U, E, E2](
    chain: Then[T, U, E, E2],
) -> Result[SagaResult[U], SagaError[E | E2]]:
    """
    Execute chained saga steps.

    Runs inner step, then applies f to get next step, and runs that.
    On any failure, compensators run in reverse.

    Example:
        saga = S.local(apply_patch, undo=restore).then(
            lambda mutation: S.step(dispatch(mutation), name="dispatch")
        )
        match await S.run_chain(saga):
            case Ok(r): reconcile(r.value)
            case Error(e): notify(e.error)
    """
    compensators: list[RecordedCompensator] = []
    steps = 1

    inner_result = await run_step(chain.inner, compensators)

    match inner_result:
        case Error(e):
            comp_run, comp_failed = await run_compensators(compensators)
            return Error(SagaError(
                error=e,
                step_failed=steps,
                compensators_run=comp_run,
                compensators_failed=comp_failed,
            ))
        case Ok(value):
            next_step = chain.f(value)

    steps += 1
    next_result = await run_step(next_step, compensators)

    match next_result:
        case Ok(final_value):
            return Ok(SagaResult(
                value=final_value,
                steps_executed=steps,
                compensators_recorded=len(compensators),
            ))
        case Error(e):
            comp_run, comp_failed = await run_compensators(compensators)
            logger.debug(
                "saga_rolled_back",
                step=next_step.name,
                compensators_run=comp_run,
                compensators_failed=comp_failed,
            )
            return Error(SagaError(
                error=e,
                step_failed=steps,
                compensators_run=comp_run,
                compensators_failed=comp_failed,
            ))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("run_step", "run_compensators", "run", "run_chain")
