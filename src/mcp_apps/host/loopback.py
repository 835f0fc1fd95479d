# mcp_apps/host/loopback.py
"""In-process transport between a component and its host.

Pairs a component :class:`HostBridge` with a host :class:`AppBridge` in
one event loop.  Every message is delivered from its own task, so the
sender never runs the receiver's code inline, the same as over a socket.
Host-to-component responses can be held back and released later to
exercise timeouts and late arrivals.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from mcp_apps.component.bridge import HostBridge
from mcp_apps.host.bridge import AppBridge

log = logging.getLogger(__name__)


class _Endpoint:
    """One direction of the loopback; quacks like a websocket."""

    def __init__(
        self,
        connection: LoopbackConnection,
        deliver: Callable[[str], Awaitable[None]],
        sent: list[str],
    ) -> None:
        self._connection = connection
        self._deliver = deliver
        self.sent = sent

    async def send(self, message: str) -> None:
        if self._connection.closed:
            raise ConnectionError("Loopback connection is closed")
        self.sent.append(message)
        self._connection._schedule(self._deliver(message))

    async def close(self) -> None:
        self._connection.closed = True


class LoopbackConnection:
    """Connects a component bridge to a host bridge without a network."""

    def __init__(
        self, component: HostBridge, host: AppBridge, *, latency: float = 0.0
    ) -> None:
        self.component = component
        self.host = host
        self.latency = latency
        self.closed = False
        self.hold_responses = False
        self.to_host: list[str] = []
        self.to_component: list[str] = []
        self._held: list[str] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self.component_side = _Endpoint(self, self._deliver_to_host, self.to_host)
        self.host_side = _Endpoint(self, self._deliver_to_component, self.to_component)

    async def connect(self) -> None:
        """Wire both bridges and flush notifications queued on the host."""
        self.component.attach(self.component_side)
        self.host.set_ws(self.host_side)
        await self.host.drain_pending()

    def _schedule(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Loopback delivery failed: %s", exc, exc_info=exc)

    async def _deliver_to_host(self, raw: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        response = await self.host.handle_message(raw)
        if response is not None and not self.closed:
            await self.host_side.send(response)

    async def _deliver_to_component(self, raw: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.hold_responses and _is_response(raw):
            self._held.append(raw)
            return
        await self.component.handle_message(raw)

    @property
    def held(self) -> int:
        return len(self._held)

    async def release(self) -> None:
        """Deliver held responses, in the order the host sent them."""
        held, self._held = self._held, []
        for raw in held:
            await self.component.handle_message(raw)

    async def drain(self) -> None:
        """Wait until no delivery is in flight."""
        while self._tasks:
            pending = list(self._tasks)
            await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.difference_update(pending)

    async def close(self) -> None:
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def __aenter__(self) -> LoopbackConnection:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()


def _is_response(raw: str) -> bool:
    try:
        msg: Any = json.loads(raw)
    except json.JSONDecodeError:
        return False
    return isinstance(msg, dict) and "method" not in msg and "id" in msg
