# mcp_apps/component/events.py
"""Publish/subscribe fan-out of global-state changes.

Dispatch is synchronous and cooperative: callbacks run on the event loop
thread that received the host notification, one after another, so a slow
subscriber delays its siblings.  A callback that has heavy work to do
should return an awaitable; the bridge schedules it as a task and moves on.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from mcp_apps.component.globals import GlobalKey, GlobalStateStore

log = logging.getLogger(__name__)

Callback = Callable[[Any], Awaitable[Any] | None]


class Subscription:
    """Handle returned by :meth:`EventBridge.subscribe`."""

    def __init__(self, bridge: EventBridge, key: GlobalKey, callback: Callback) -> None:
        self._bridge = bridge
        self.key = key
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        """Stop delivery; safe to call more than once and from a callback."""
        if not self.active:
            return
        self.active = False
        self._bridge._remove(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.unsubscribe()


class EventBridge:
    """Delivers per-key change notifications to independent subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[GlobalKey, list[Subscription]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(self, key: GlobalKey | str, callback: Callback) -> Subscription:
        """Register *callback* for changes to *key*."""
        subscription = Subscription(self, GlobalKey(key), callback)
        key = subscription.key
        self._subscribers[key] = [*self._subscribers.get(key, ()), subscription]
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscribers.get(subscription.key)
        if not subs:
            return
        # Rebind instead of mutating so an in-progress dispatch keeps its list
        remaining = [s for s in subs if s is not subscription]
        if remaining:
            self._subscribers[subscription.key] = remaining
        else:
            del self._subscribers[subscription.key]

    def subscriber_count(self, key: GlobalKey | str) -> int:
        return len(self._subscribers.get(GlobalKey(key), ()))

    def publish(self, keys: Iterable[GlobalKey], store: GlobalStateStore) -> int:
        """Notify subscribers of *keys* with the store's current values.

        Each subscription is called at most once per publish.  Returns the
        number of callbacks invoked.
        """
        delivered = 0
        for key in dict.fromkeys(keys):
            subs = self._subscribers.get(key)
            if not subs:
                continue
            value = store.get(key)
            for subscription in subs:
                if not subscription.active:
                    continue
                delivered += 1
                try:
                    result = subscription.callback(value)
                except Exception:
                    log.exception("Subscriber for %s raised", key.value)
                    continue
                if inspect.isawaitable(result):
                    self._defer(result)
        return delivered

    def _defer(self, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Deferred subscriber work failed: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for deferred subscriber work scheduled so far."""
        while self._tasks:
            pending = list(self._tasks)
            await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.difference_update(pending)

    def clear(self) -> None:
        """Drop every subscription (component unmount)."""
        for subs in self._subscribers.values():
            for subscription in subs:
                subscription.active = False
        self._subscribers.clear()
        for task in self._tasks:
            task.cancel()
