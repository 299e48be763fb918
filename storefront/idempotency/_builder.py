"""
Idempotency builder — fluent API over run_idempotent.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable
from dataclasses import dataclass, replace

from kungfu import LazyCoroResult, Result, Ok

from storefront.idempotency._types import (
    IdempotencyResult,
    IdempotencyError,
)
from storefront.idempotency._store import StoreAny, MemoryStore
from storefront.idempotency._policy import Policy
from storefront.idempotency._execute import IdempotencySpec, run_idempotent


# ═══════════════════════════════════════════════════════════════════════════════
# Key Function Type
# ═══════════════════════════════════════════════════════════════════════════════

type KeyFn[K] = Callable[[K], str]
type Operation[K, T, E] = Callable[[K], Awaitable[Result[T, E]]]


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotent Builder
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class Idempotent[K, T, E]:
    """Fluent idempotency builder."""

    _operation: Operation[K, T, E]
    _key_fn: KeyFn[K] | None = None
    _store: StoreAny | None = None
    _policy: Policy = Policy()

    def key(self, fn: KeyFn[K]) -> Idempotent[K, T, E]:
        return replace(self, _key_fn=fn)

    def store(self, s: StoreAny) -> Idempotent[K, T, E]:
        return replace(self, _store=s)

    def policy(self, p: Policy) -> Idempotent[K, T, E]:
        return replace(self, _policy=p)

    def build(self) -> IdempotentExecutor[K, T, E]:
        if self._key_fn is None:
            raise ValueError("key() is required")

        return IdempotentExecutor(
            operation=self._operation,
            key_fn=self._key_fn,
            store=self._store if self._store is not None else MemoryStore(),
            policy=self._policy,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotent Executor
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class IdempotentExecutor[K, T, E]:
    """Compiled idempotent executor."""

    operation: Operation[K, T, E]
    key_fn: KeyFn[K]
    store: StoreAny
    policy: Policy

    def run(self, input_val: K) -> LazyCoroResult[IdempotencyResult[T], IdempotencyError[E]]:
        spec = IdempotencySpec(
            key=self.key_fn(input_val),
            input_value=input_val,
            operation=self.operation,
            store=self.store,
            policy=self.policy,
        )

        async def execute() -> Result[IdempotencyResult[T], IdempotencyError[E]]:
            return await run_idempotent(spec)

        return LazyCoroResult(execute)

    async def invalidate(self, input_val: K) -> bool:
        """Forget the record so the operation may run again."""
        match await self.store.delete(self.key_fn(input_val)):
            case Ok(deleted):
                return deleted
            case _:
                return False


# ═══════════════════════════════════════════════════════════════════════════════
# idempotent() — Entry Point
# ═══════════════════════════════════════════════════════════════════════════════

def idempotent[K, T, E](operation: Operation[K, T, E]) -> Idempotent[K, T, E]:
    """
    Create idempotent wrapper for an operation.

    Example:
        executor = (
            I.idempotent(place_order)
            .key(lambda req: f"order:{req.session_id}")
            .store(I.MemoryStore())
            .policy(I.Policy().with_ttl(hours=24))
            .build()
        )

        result = await executor.run(request)
    """
    return Idempotent(_operation=operation)


__all__ = (
    "KeyFn",
    "Operation",
    "Idempotent",
    "IdempotentExecutor",
    "idempotent",
)
