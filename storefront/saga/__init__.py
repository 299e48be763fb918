"""
Saga — steps with compensation.

    from storefront import saga as S

    saga = S.local(apply_patch, undo=roll_back).then(
        lambda m: S.step(dispatch(m), name="dispatch")
    )
    result = await S.run_chain(saga)
"""

from __future__ import annotations

from storefront.saga._types import (
    Compensator,
    SagaStep,
    SagaResult,
    SagaError,
    Then,
)
from storefront.saga._step import step, from_async, local
from storefront.saga._run import run, run_chain

__all__ = (
    "Compensator",
    "SagaStep",
    "SagaResult",
    "SagaError",
    "Then",
    "step",
    "from_async",
    "local",
    "run",
    "run_chain",
)
