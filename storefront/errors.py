"""
Error taxonomy.

Every failure the engine can report is one of these. They are exceptions so
collaborators may raise them, but the stores *return* them inside
``Error(...)`` rather than raising:

    match await store.update_item(item_id, 3):
        case Ok(cart):
            ...
        case Error(ValidationError(message=msg)):
            show(msg)
        case Error(e) if e.transient:
            ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


# ═══════════════════════════════════════════════════════════════════════════════
# Error Kind
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorKind(Enum):
    """Coarse classification used for retry and notification decisions."""

    VALIDATION = auto()
    CONFLICT = auto()
    NOT_FOUND = auto()
    SESSION_EXPIRED = auto()
    NETWORK = auto()
    SERVER = auto()
    PAYMENT_DECLINED = auto()
    PARTIAL_FAILURE = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(eq=False)
class StorefrontError(Exception):
    """
    Base class for every engine failure.

    message: human-readable text, shown verbatim to the shopper.
    status: HTTP status when the failure came from the server.
    payload: decoded response body, if any.
    """

    message: str
    status: int | None = None
    payload: Any = field(default=None, repr=False)

    kind = ErrorKind.SERVER
    title = "Something went wrong"

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    @property
    def transient(self) -> bool:
        """True when repeating the same request may succeed."""
        return False


# ═══════════════════════════════════════════════════════════════════════════════
# Client / Request Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(eq=False)
class ValidationError(StorefrontError):
    """Rejected input: form data, quantity bounds or insufficient stock."""

    field: str | None = None

    kind = ErrorKind.VALIDATION
    title = "Invalid request"

    @classmethod
    def from_pydantic(cls, error: Any) -> ValidationError:
        """First problem of a pydantic.ValidationError, with its dotted field path."""
        problems = error.errors()
        if not problems:
            return cls(str(error))
        first = problems[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        return cls(first.get("msg", "Invalid request"), field=field or None)


@dataclass(eq=False)
class ConflictError(StorefrontError):
    """Server state moved underneath us; reconcile instead of retrying."""

    kind = ErrorKind.CONFLICT
    title = "Out of date"


@dataclass(eq=False)
class NotFoundError(StorefrontError):
    kind = ErrorKind.NOT_FOUND
    title = "Not found"


@dataclass(eq=False)
class SessionExpired(StorefrontError):
    """The server no longer recognizes the session token."""

    kind = ErrorKind.SESSION_EXPIRED
    title = "Session expired"


# ═══════════════════════════════════════════════════════════════════════════════
# Transport / Server Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(eq=False)
class TransientNetworkError(StorefrontError):
    """
    Connection failure, timeout or gateway error.

    request_sent: False when the request never left the client (connect
    failure), so even non-idempotent calls are safe to repeat.
    """

    timed_out: bool = False
    request_sent: bool = True

    kind = ErrorKind.NETWORK
    title = "Network error"

    @property
    def transient(self) -> bool:
        return True


NetworkError = TransientNetworkError


@dataclass(eq=False)
class ServerError(StorefrontError):
    """Any other non-success response. Never retried."""

    kind = ErrorKind.SERVER
    title = "Server error"


# ═══════════════════════════════════════════════════════════════════════════════
# Payment / Order Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(eq=False)
class TerminalPaymentError(StorefrontError):
    """Payment failures that must not be retried automatically."""

    kind = ErrorKind.PAYMENT_DECLINED
    title = "Payment failed"


@dataclass(eq=False)
class PaymentDeclined(TerminalPaymentError):
    decline_code: str | None = None


@dataclass(eq=False)
class IdempotencyViolationRisk(StorefrontError):
    """Retrying could produce a duplicate side effect."""

    kind = ErrorKind.PARTIAL_FAILURE
    title = "Order needs attention"


@dataclass(eq=False)
class PartialFailure(IdempotencyViolationRisk):
    """Payment was captured but the order record could not be created."""

    payment_id: str | None = None
    cause: StorefrontError | None = field(default=None, repr=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "ErrorKind",
    "StorefrontError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "SessionExpired",
    "TransientNetworkError",
    "NetworkError",
    "ServerError",
    "TerminalPaymentError",
    "PaymentDeclined",
    "IdempotencyViolationRisk",
    "PartialFailure",
)
