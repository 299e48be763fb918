"""
Per-step form drafts in durable client storage.

Drafts are advisory: a storage failure is logged and the checkout carries on.

    drafts = FormDrafts(storage)
    await drafts.save(CheckoutStep.SHIPPING, {"shippingAddress": {...}})
    values = await drafts.load(CheckoutStep.SHIPPING)   # {} when absent
    await drafts.clear()                                # every step
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from kungfu import Ok, Error

from storefront.session import Storage
from storefront.checkout._types import CheckoutStep, STEP_ORDER


logger = structlog.get_logger(__name__)

DRAFT_PREFIX = "checkout-form-"


def draft_key(step: CheckoutStep) -> str:
    return f"{DRAFT_PREFIX}{step.value}"


class FormDrafts:
    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    async def save(self, step: CheckoutStep, values: dict[str, Any]) -> None:
        """Merge values into the step's draft."""
        merged = {**await self.load(step), **values}
        match await self._storage.set(draft_key(step), json.dumps(merged)):
            case Error(err):
                logger.warning("draft_save_failed", step=step.value, error=err.message)
            case Ok(_):
                logger.debug("draft_saved", step=step.value, fields=sorted(values))

    async def load(self, step: CheckoutStep) -> dict[str, Any]:
        match await self._storage.get(draft_key(step)):
            case Ok(raw) if raw:
                try:
                    data = json.loads(raw)
                except ValueError:
                    logger.warning("draft_corrupt", step=step.value)
                    return {}
                return data if isinstance(data, dict) else {}
            case Ok(_):
                return {}
            case Error(err):
                logger.warning("draft_load_failed", step=step.value, error=err.message)
                return {}

    async def clear(self, step: CheckoutStep | None = None) -> None:
        steps = STEP_ORDER if step is None else (step,)
        for s in steps:
            match await self._storage.delete(draft_key(s)):
                case Error(err):
                    logger.warning("draft_clear_failed", step=s.value, error=err.message)
                case Ok(_):
                    pass


__all__ = (
    "DRAFT_PREFIX",
    "draft_key",
    "FormDrafts",
)
