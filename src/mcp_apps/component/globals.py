# mcp_apps/component/globals.py
"""Process-wide, versioned record of host-supplied globals.

The store is the single source of truth inside the component.  Deltas are
partial: a key that is missing, or carries the :data:`UNSET` sentinel, keeps
its last known value.  JSON ``null`` is a real value and does overwrite.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from mcp_apps.component.models import GlobalsRecord

log = logging.getLogger(__name__)


class GlobalKey(str, Enum):
    """Typed topics, one per host global."""

    THEME = "theme"
    USER_AGENT = "userAgent"
    LOCALE = "locale"
    MAX_HEIGHT = "maxHeight"
    DISPLAY_MODE = "displayMode"
    SAFE_AREA = "safeArea"
    TOOL_INPUT = "toolInput"
    TOOL_OUTPUT = "toolOutput"
    TOOL_RESPONSE_METADATA = "toolResponseMetadata"
    WIDGET_STATE = "widgetState"


class _Unset(Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset.UNSET
"""Explicitly absent value: never overrides the last known value."""


def _initial_values() -> dict[GlobalKey, Any]:
    defaults = GlobalsRecord().model_dump(mode="json")
    return {key: defaults[key.value] for key in GlobalKey}


def coerce_key(key: GlobalKey | str) -> GlobalKey | None:
    """Map a host key onto a :class:`GlobalKey`; unknown keys map to None."""
    try:
        return GlobalKey(key)
    except ValueError:
        return None


class GlobalStateStore:
    """Versioned globals record with atomic partial merges."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: Mapping[GlobalKey, Any] = MappingProxyType(_initial_values())
        self._version = 0
        if initial:
            self.apply_delta(initial)
            # The mount snapshot is the baseline, not an update
            self._version = 0

    @property
    def version(self) -> int:
        """Number of deltas that changed at least one key."""
        return self._version

    def get(self, key: GlobalKey | str) -> Any:
        """Current value for *key*, or its initial default."""
        return self._values[GlobalKey(key)]

    def __getitem__(self, key: GlobalKey | str) -> Any:
        return self.get(key)

    def apply_delta(self, delta: Mapping[str, Any]) -> tuple[GlobalKey, ...]:
        """Merge *delta* and return the keys that were applied.

        The merged record is built aside and swapped in as a whole, so a
        reader never sees half of a delta.  Absent values are skipped and
        unknown keys are ignored for forward compatibility.
        """
        merged = dict(self._values)
        applied: list[GlobalKey] = []

        for raw_key, value in delta.items():
            if value is UNSET:
                continue
            key = coerce_key(raw_key)
            if key is None:
                log.debug("Ignoring unknown global %r", raw_key)
                continue
            merged[key] = copy.deepcopy(value)
            if key not in applied:
                applied.append(key)

        if applied:
            self._values = MappingProxyType(merged)
            self._version += 1
            log.debug(
                "Applied globals delta v%d: %s",
                self._version,
                ", ".join(k.value for k in applied),
            )
        return tuple(applied)

    def snapshot(self) -> dict[str, Any]:
        """Copy of the full record keyed by host field name."""
        values = self._values
        return {key.value: copy.deepcopy(value) for key, value in values.items()}

    def record(self) -> GlobalsRecord:
        """Typed view of the current record.

        Values the typed model cannot represent (``null`` theme, a display
        mode this version does not know) read as that field's default; the
        raw value is still available from :meth:`get`.
        """
        values = self.snapshot()
        try:
            return GlobalsRecord.model_validate(values)
        except ValidationError as e:
            invalid = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            log.debug("Using defaults for untyped globals: %s", ", ".join(sorted(invalid)))
            return GlobalsRecord.model_validate(
                {k: v for k, v in values.items() if k not in invalid}
            )
