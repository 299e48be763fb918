"""
Idempotency — run an operation at most once per key.

    from storefront import idempotency as I

    executor = (
        I.idempotent(place_order)
        .key(lambda req: f"order:{req.session_id}")
        .store(I.MemoryStore())
        .policy(I.Policy().with_ttl(hours=24).with_on_pending(I.WAIT))
        .build()
    )
    match await executor.run(request):
        case Ok(r): r.value, r.from_cache
        case Error(e): e.kind, e.original_error
"""

from storefront.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from storefront.idempotency._store import (
    Store,
    StoreAny,
    StoreError,
    MemoryStore,
)
from storefront.idempotency._policy import (
    Policy,
    OnPending,
    WAIT,
    FAIL,
)
from storefront.idempotency._execute import (
    IdempotencySpec,
    run_idempotent,
)
from storefront.idempotency._builder import (
    idempotent,
    Idempotent,
    IdempotentExecutor,
)

__all__ = (
    # Types
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyError",
    "IdempotencyErrorKind",
    # Store
    "Store",
    "StoreAny",
    "StoreError",
    "MemoryStore",
    # Policy
    "Policy",
    "OnPending",
    "WAIT",
    "FAIL",
    # Spec & API
    "IdempotencySpec",
    "run_idempotent",
    # Builder
    "idempotent",
    "Idempotent",
    "IdempotentExecutor",
)
