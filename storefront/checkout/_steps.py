"""
CheckoutStepMachine — which checkout step the shopper may see.

    CART ──▶ SHIPPING ──▶ PAYMENT ──▶ CONFIRMATION (terminal)

    steps = CheckoutStepMachine(checkout_store)
    steps.complete_step(CheckoutStep.CART)
    steps.can_access_step(CheckoutStep.SHIPPING)   # True
    steps.go_to(CheckoutStep.PAYMENT)              # Error: shipping not done

Completion lives in the CheckoutSessionStore, so it survives a reload once
the session has been saved. The machine itself never touches the network.
"""

from __future__ import annotations

import structlog
from kungfu import Result, Ok, Error

from storefront.errors import ValidationError
from storefront.checkout._types import CheckoutStep, STEP_ORDER
from storefront.checkout._store import CheckoutSessionStore


logger = structlog.get_logger(__name__)


class CheckoutStepMachine:
    def __init__(
        self,
        store: CheckoutSessionStore,
        current: CheckoutStep = CheckoutStep.CART,
    ) -> None:
        self._store = store
        self._current = current

    @property
    def current_step(self) -> CheckoutStep:
        return self._current

    @property
    def completed_steps(self) -> frozenset[CheckoutStep]:
        return self._store.completed_steps

    @property
    def is_finished(self) -> bool:
        return self._current == CheckoutStep.CONFIRMATION

    def complete_step(self, step: CheckoutStep) -> frozenset[CheckoutStep]:
        """Mark a step completed. Idempotent."""
        self._store.mark_step_completed(step)
        return self.completed_steps

    def can_access_step(self, step: CheckoutStep) -> bool:
        """
        Current step, any completed step, or the step right after a
        completed one. Nothing but CONFIRMATION once it is reached.
        """
        if self.is_finished:
            return step == CheckoutStep.CONFIRMATION
        if step == self._current or self._store.is_step_completed(step):
            return True
        previous = step.previous
        return previous is not None and self._store.is_step_completed(previous)

    def accessible_steps(self) -> tuple[CheckoutStep, ...]:
        return tuple(s for s in STEP_ORDER if self.can_access_step(s))

    def go_to(self, step: CheckoutStep) -> Result[CheckoutStep, ValidationError]:
        if not self.can_access_step(step):
            logger.info("checkout_step_blocked", current=self._current.value, requested=step.value)
            return Error(ValidationError(
                f"Complete the previous steps before {step.value}",
                field="step",
            ))
        if step != self._current:
            logger.info("checkout_step_changed", previous=self._current.value, current=step.value)
            self._current = step
        return Ok(step)

    def next_step(self) -> Result[CheckoutStep, ValidationError]:
        """Complete the current step and move to its successor."""
        following = self._current.next
        if following is None:
            return Ok(self._current)
        self.complete_step(self._current)
        return self.go_to(following)

    def finish(self) -> CheckoutStep:
        """Move to CONFIRMATION once an order exists; nothing else is reachable after."""
        logger.info("checkout_step_changed", previous=self._current.value, current="confirmation")
        self._current = CheckoutStep.CONFIRMATION
        return self._current

    def reset(self) -> None:
        self._current = CheckoutStep.CART


__all__ = ("CheckoutStepMachine",)
