# mcp_apps/server/locale.py
"""Locale negotiation with progressive subtag truncation.

``es-419`` falls back to ``es`` when only ``es`` is supported; a tag with
no match at any length degrades to the server default and is flagged as
unavailable.  Negotiation never fails a request.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel

from mcp_apps.config.defaults import DEFAULT_LOCALE
from mcp_apps.constants import MetaKey
from mcp_apps.errors import UnsupportedLocale

log = logging.getLogger(__name__)


class LocaleSource(str, Enum):
    EXACT = "exact"
    FALLBACK = "fallback"
    DEFAULT = "default"


class LocaleResolution(BaseModel):
    """Outcome of negotiating one requested tag."""

    requested: str | None = None
    resolved: str
    source: LocaleSource
    unavailable: bool = False

    model_config = {"frozen": True}

    def to_meta(self) -> dict[str, Any]:
        """``_meta`` entries echoed on every response."""
        meta: dict[str, Any] = {MetaKey.LOCALE.value: self.resolved}
        if self.unavailable:
            meta[MetaKey.LOCALE_UNAVAILABLE.value] = True
        return meta


def normalize_tag(tag: str) -> str:
    """Canonical comparison form: lower case, ``-`` separated."""
    return tag.strip().replace("_", "-").lower()


def requested_locale(meta: Mapping[str, Any] | None) -> str | None:
    """Locale a request asks for, from the current or the legacy key."""
    if not meta:
        return None
    for key in (MetaKey.LOCALE, MetaKey.LEGACY_LOCALE):
        value = meta.get(key.value)
        if isinstance(value, str) and value.strip():
            return value
    return None


class LocaleNegotiator:
    """Resolves requested tags against a fixed set of supported tags."""

    def __init__(self, supported: Iterable[str], default: str = DEFAULT_LOCALE) -> None:
        self._supported: dict[str, str] = {}
        for tag in supported:
            self._supported.setdefault(normalize_tag(tag), tag)
        if normalize_tag(default) not in self._supported:
            self._supported[normalize_tag(default)] = default
        self.default = self._supported[normalize_tag(default)]

    @property
    def supported(self) -> list[str]:
        return list(self._supported.values())

    def match(self, requested: str) -> tuple[str, LocaleSource]:
        """Longest supported prefix of *requested*.

        Raises:
            UnsupportedLocale: no subtag prefix is supported.
        """
        subtags = [s for s in normalize_tag(requested).split("-") if s]
        if not subtags:
            raise UnsupportedLocale(requested)

        exact = "-".join(subtags)
        if exact in self._supported:
            return self._supported[exact], LocaleSource.EXACT

        while len(subtags) > 1:
            subtags.pop()
            candidate = "-".join(subtags)
            if candidate in self._supported:
                return self._supported[candidate], LocaleSource.FALLBACK

        raise UnsupportedLocale(requested)

    def resolve(self, requested: str | None) -> LocaleResolution:
        """Resolve *requested*, degrading to the default when unsupported."""
        if not requested or not requested.strip():
            return LocaleResolution(
                requested=requested, resolved=self.default, source=LocaleSource.DEFAULT
            )
        try:
            resolved, source = self.match(requested)
        except UnsupportedLocale as e:
            log.info("%s; using default locale %s", e, self.default)
            return LocaleResolution(
                requested=requested,
                resolved=self.default,
                source=LocaleSource.DEFAULT,
                unavailable=True,
            )
        return LocaleResolution(requested=requested, resolved=resolved, source=source)
