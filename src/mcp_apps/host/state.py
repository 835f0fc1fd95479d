# mcp_apps/host/state.py
"""Durable widget state, keyed by widget instance."""

from __future__ import annotations

import copy
import logging
from typing import Any

log = logging.getLogger(__name__)


class WidgetStateStore:
    """Holds the last persisted snapshot of each widget instance.

    Every write replaces the whole snapshot, so re-sending the same state
    leaves the store unchanged.
    """

    def __init__(self) -> None:
        self._states: dict[str, dict[str, Any]] = {}
        self._writes: dict[str, int] = {}

    def put(self, widget_id: str, state: dict[str, Any]) -> None:
        self._states[widget_id] = copy.deepcopy(state)
        self._writes[widget_id] = self._writes.get(widget_id, 0) + 1
        log.debug(
            "Stored widget state for %s (write %d)", widget_id, self._writes[widget_id]
        )

    def get(self, widget_id: str) -> dict[str, Any] | None:
        state = self._states.get(widget_id)
        return copy.deepcopy(state) if state is not None else None

    def writes(self, widget_id: str) -> int:
        return self._writes.get(widget_id, 0)

    def drop(self, widget_id: str) -> None:
        self._states.pop(widget_id, None)
        self._writes.pop(widget_id, None)

    def __contains__(self, widget_id: object) -> bool:
        return widget_id in self._states
