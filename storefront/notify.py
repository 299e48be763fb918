"""
Notifications — how store outcomes reach the shopper.

    notifier = Notifier()
    unsubscribe = notifier.subscribe(lambda n: print(n.title, n.message))
    notifier.success("Cart updated", "Item quantity has been updated.")
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from storefront.errors import StorefrontError


logger = structlog.get_logger(__name__)


class Level(Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Notice:
    title: str
    message: str
    level: Level = Level.INFO


type Listener = Callable[[Notice], None]


class Notifier:
    """
    Synchronous fan-out of notices to subscribers.

    A subscriber that raises is logged and skipped; it never breaks the
    store operation that published the notice.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, notice: Notice) -> None:
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("notice_listener_failed", title=notice.title)

    def info(self, title: str, message: str) -> None:
        self.publish(Notice(title, message, Level.INFO))

    def success(self, title: str, message: str) -> None:
        self.publish(Notice(title, message, Level.SUCCESS))

    def error(self, title: str, error: StorefrontError | str) -> None:
        message = error.message if isinstance(error, StorefrontError) else error
        self.publish(Notice(title, message, Level.ERROR))

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


__all__ = (
    "Level",
    "Notice",
    "Listener",
    "Notifier",
)
