"""
Mutation — an optimistic change awaiting the server's verdict.

    PENDING ──server ok──▶ COMMITTED
            └─server err─▶ ROLLED_BACK
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from itertools import count

from storefront.errors import StorefrontError


_ids = count(1)


class MutationState(Enum):
    PENDING = auto()
    COMMITTED = auto()
    ROLLED_BACK = auto()


@dataclass(frozen=True, slots=True, eq=False)
class Mutation[S]:
    """
    One optimistic change.

    snapshot: the view before the change was applied.
    patch: pure function applying the change to a view; re-applied on top
        of the confirmed state whenever an earlier mutation settles.
    key: serialization key; mutations sharing a key run one at a time.
    """

    kind: str
    key: str
    snapshot: S
    patch: Callable[[S], S] = field(repr=False)
    state: MutationState = MutationState.PENDING
    error: StorefrontError | None = None
    id: int = field(default_factory=lambda: next(_ids))

    @property
    def is_pending(self) -> bool:
        return self.state == MutationState.PENDING

    def commit(self) -> Mutation[S]:
        return replace(self, state=MutationState.COMMITTED)

    def roll_back(self, error: StorefrontError) -> Mutation[S]:
        return replace(self, state=MutationState.ROLLED_BACK, error=error)


__all__ = (
    "MutationState",
    "Mutation",
)
