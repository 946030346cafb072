"""Fan-out of session events to subscribers.

Each subscription owns a queue and a worker task, so a slow or failing
handler only delays its own deliveries. ``publish`` never awaits.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from pypogo.updates.events import UpdateCategory, UpdateEvent

_logger = logging.getLogger(__name__)

UpdateHandler = Callable[[UpdateEvent], Awaitable[None] | None]


@dataclass(slots=True, eq=False)
class _Subscription:
    category: UpdateCategory
    handler: UpdateHandler
    queue: asyncio.Queue[UpdateEvent | None] = field(default_factory=asyncio.Queue)
    task: asyncio.Task[None] | None = None
    active: bool = True


class UpdateNotifier:
    """Per-category subscriber registry with asynchronous delivery.

    Delivery guarantees:

    * every subscriber registered at publish time receives the event;
    * events reach each subscriber in publish order;
    * subscribers added later do not see earlier events.
    """

    def __init__(self, *, drain_timeout: float = 5.0) -> None:
        self._subscriptions: dict[UpdateCategory, list[_Subscription]] = {cat: [] for cat in UpdateCategory}
        self._drain_timeout = drain_timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscriber_count(self, category: UpdateCategory | str) -> int:
        return sum(1 for sub in self._subscriptions[UpdateCategory(category)] if sub.active)

    def subscribe(self, category: UpdateCategory | str, handler: UpdateHandler) -> Callable[[], None]:
        """Register *handler* for *category*; returns a callable that unsubscribes it."""
        cat = UpdateCategory(category)
        sub = _Subscription(category=cat, handler=handler)
        if self._closed:
            _logger.debug("Subscribe to %s after notifier close ignored", cat)
            sub.active = False
            return lambda: None
        # Copy-on-write so publish can iterate a stable snapshot.
        self._subscriptions[cat] = [*self._subscriptions[cat], sub]
        return lambda: self._remove(sub)

    def unsubscribe(self, category: UpdateCategory | str, handler: UpdateHandler) -> bool:
        """Remove the oldest active subscription of *handler* to *category*."""
        for sub in self._subscriptions[UpdateCategory(category)]:
            if sub.active and sub.handler == handler:
                self._remove(sub)
                return True
        return False

    def _remove(self, sub: _Subscription) -> None:
        if not sub.active:
            return
        sub.active = False
        self._subscriptions[sub.category] = [cand for cand in self._subscriptions[sub.category] if cand is not sub]
        if sub.task is not None:
            sub.queue.put_nowait(None)

    def publish(self, event: UpdateEvent) -> int:
        """Queue *event* for every current subscriber of its category.

        Must be called from within the running event loop. Returns the
        number of subscribers the event was queued for.
        """
        if self._closed:
            _logger.debug("Dropping %s published after notifier close", event.category)
            return 0
        delivered = 0
        for sub in self._subscriptions[event.category]:
            if not sub.active:
                continue
            sub.queue.put_nowait(event)
            if sub.task is None:
                sub.task = asyncio.get_running_loop().create_task(
                    self._deliver(sub), name=f"pypogo-notify-{sub.category}"
                )
            delivered += 1
        _logger.debug("Published %s to %d subscriber(s)", event.category, delivered)
        return delivered

    async def _deliver(self, sub: _Subscription) -> None:
        while True:
            event = await sub.queue.get()
            try:
                if event is None:
                    return
                if not sub.active:
                    continue
                result = sub.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _logger.warning("Update handler %r failed for %s", sub.handler, sub.category, exc_info=True)
            finally:
                sub.queue.task_done()

    async def join(self) -> None:
        """Wait until every active subscriber has processed its queued events."""
        subs = [sub for subs in self._subscriptions.values() for sub in subs if sub.active and sub.task is not None]
        await asyncio.gather(*(sub.queue.join() for sub in subs))

    async def close(self) -> None:
        """Stop accepting events, let queued ones drain, then stop the workers."""
        if self._closed:
            return
        self._closed = True
        current = asyncio.current_task()
        tasks: list[asyncio.Task[None]] = []
        for subs in self._subscriptions.values():
            for sub in subs:
                if sub.task is None or sub.task.done():
                    continue
                sub.queue.put_nowait(None)
                if sub.task is not current:
                    tasks.append(sub.task)
        if not tasks:
            return
        _done, pending = await asyncio.wait(tasks, timeout=self._drain_timeout)
        for task in pending:
            _logger.warning("Update handler still busy after %.1fs; cancelling", self._drain_timeout)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
