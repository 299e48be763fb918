"""
Saga step creation.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable

from kungfu import Result, Ok, LazyCoroResult
from combinators import lift as L

from storefront.saga._types import SagaStep, Compensator

# ═══════════════════════════════════════════════════════════════════════════════
# step() — Primary Constructor
# ═══════════════════════════════════════════════════════════════════════════════


def step[T, E](
    action: LazyCoroResult[T, E],
    compensate: Compensator[T] | None = None,
    *,
    name: str = "step",
) -> SagaStep[T, E]:
    """
    Create a compensated saga step.

    Example:
        dispatch = S.step(
            LazyCoroResult(lambda: transport.put(f"/cart/items/{item_id}", body)),
            name="dispatch",
        )
    """
    return SagaStep(action=action, compensate=compensate, name=name)


# ═══════════════════════════════════════════════════════════════════════════════
# from_async() — Create step from async callable
# ═══════════════════════════════════════════════════════════════════════════════


def from_async[T, E](
    action: Callable[[], Awaitable[T]],
    on_error: Callable[[Exception], E],
    compensate: Compensator[T] | None = None,
    *,
    name: str = "step",
) -> SagaStep[T, E]:
    """
    Create step from async callable with error handling.

    Example:
        S.from_async(
            lambda: gateway.confirm_payment(pm_id, amount, idempotency_key=key),
            on_error=lambda e: PaymentDeclined(str(e)),
        )
    """
    return SagaStep(
        action=L.catching_async(action, on_error=on_error),
        compensate=compensate,
        name=name,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# local() — Synchronous state change with undo
# ═══════════════════════════════════════════════════════════════════════════════


def local[T](
    apply: Callable[[], T],
    undo: Callable[[T], None],
    *,
    name: str = "apply",
) -> SagaStep[T, object]:
    """
    Step for an in-memory change that cannot fail (an optimistic patch).

    Example:
        S.local(
            lambda: store._apply(mutation),
            undo=lambda m: store._roll_back(m),
        )
    """

    async def run() -> Result[T, object]:
        return Ok(apply())

    async def compensate(value: T) -> None:
        undo(value)

    return SagaStep(action=LazyCoroResult(run), compensate=compensate, name=name)


__all__ = ("step", "from_async", "local")
