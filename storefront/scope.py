"""
ViewScope — the lifetime of one UI view.

    scope = ViewScope()
    search = scope.debounce(lambda q: store.shipping_methods(q), delay=0.3)
    scope.subscribe(notifier, show_toast)
    scope.dispatch(cart.update_item(item_id, 3))
    ...
    scope.close()

Closing cancels pending debounce/throttle timers and drops the scope's
notice subscriptions. Dispatched mutations keep running: their requests and
reconciliation finish, only this view stops hearing about them.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Coroutine
from typing import Any

import structlog

from storefront.notify import Notice, Notifier


logger = structlog.get_logger(__name__)


class ScopeClosed(RuntimeError):
    pass


class ViewScope:
    def __init__(self, name: str = "view") -> None:
        self.name = name
        self._closed = False
        self._timers: set[asyncio.TimerHandle] = set()
        self._unsubscribers: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    # ───────────────────────────────────────────────────────────────────────────
    # Timers
    # ───────────────────────────────────────────────────────────────────────────

    def debounce(self, fn: Callable[..., Any], delay: float) -> Callable[..., None]:
        """
        Call fn once calls stop arriving for delay seconds, with the last args.

        A coroutine returned by fn is dispatched like dispatch().
        """
        handle: asyncio.TimerHandle | None = None

        def call(*args: Any, **kwargs: Any) -> None:
            nonlocal handle
            self._ensure_open()
            if handle is not None:
                handle.cancel()
                self._timers.discard(handle)
            handle = self._later(delay, fn, args, kwargs)

        return call

    def throttle(self, fn: Callable[..., Any], delay: float) -> Callable[..., None]:
        """
        Call fn at most once per delay seconds.

        The first call runs immediately; the latest call made during the
        window runs when it ends.
        """
        window: asyncio.TimerHandle | None = None
        trailing: tuple[tuple[Any, ...], dict[str, Any]] | None = None

        def close_window() -> None:
            nonlocal window, trailing
            self._timers.discard(window)  # type: ignore[arg-type]
            window = None
            if trailing is not None:
                args, kwargs = trailing
                trailing = None
                call(*args, **kwargs)

        def call(*args: Any, **kwargs: Any) -> None:
            nonlocal window, trailing
            self._ensure_open()
            if window is not None:
                trailing = (args, kwargs)
                return
            self._invoke(fn, args, kwargs)
            window = asyncio.get_running_loop().call_later(delay, close_window)
            self._timers.add(window)

        return call

    def _later(
        self,
        delay: float,
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> asyncio.TimerHandle:
        def fire() -> None:
            self._timers.discard(handle)
            self._invoke(fn, args, kwargs)

        handle = asyncio.get_running_loop().call_later(delay, fire)
        self._timers.add(handle)
        return handle

    def _invoke(self, fn: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        try:
            result = fn(*args, **kwargs)
        except Exception:
            logger.exception("scope_callback_failed", scope=self.name)
            return
        if inspect.isawaitable(result):
            self.dispatch(result)

    # ───────────────────────────────────────────────────────────────────────────
    # Notices
    # ───────────────────────────────────────────────────────────────────────────

    def subscribe(self, notifier: Notifier, callback: Callable[[Notice], None]) -> Callable[[], None]:
        """Subscribe for the lifetime of the scope."""
        self._ensure_open()

        def deliver(notice: Notice) -> None:
            if not self._closed:
                callback(notice)

        unsubscribe = notifier.subscribe(deliver)
        self._unsubscribers.append(unsubscribe)
        return unsubscribe

    # ───────────────────────────────────────────────────────────────────────────
    # Work
    # ───────────────────────────────────────────────────────────────────────────

    def dispatch[T](self, work: Coroutine[Any, Any, T] | Any) -> asyncio.Task[T]:
        """Run work in the background. close() does not cancel it."""
        task = asyncio.ensure_future(work)
        self._tasks.add(task)
        task.add_done_callback(self._settled)
        return task

    def _settled(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("scope_task_crashed", scope=self.name, exc_info=task.exception())

    async def wait(self) -> None:
        """Wait for everything dispatched so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        logger.debug("scope_closed", scope=self.name, running=len(self._tasks))

    def _ensure_open(self) -> None:
        if self._closed:
            raise ScopeClosed(f"scope {self.name!r} is closed")

    def __enter__(self) -> ViewScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = (
    "ScopeClosed",
    "ViewScope",
)
