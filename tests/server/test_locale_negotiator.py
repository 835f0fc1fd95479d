# tests/server/test_locale_negotiator.py
"""Tests for locale negotiation."""

from __future__ import annotations

import pytest

from mcp_apps.errors import UnsupportedLocale
from mcp_apps.server.locale import (
    LocaleNegotiator,
    LocaleResolution,
    LocaleSource,
    normalize_tag,
    requested_locale,
)


@pytest.fixture
def negotiator() -> LocaleNegotiator:
    return LocaleNegotiator(["en", "es", "pt-BR"], default="en")


class TestResolve:
    def test_exact(self, negotiator):
        res = negotiator.resolve("es")
        assert res.resolved == "es"
        assert res.source is LocaleSource.EXACT
        assert not res.unavailable

    def test_truncation(self, negotiator):
        res = negotiator.resolve("es-419")
        assert res.resolved == "es"
        assert res.source is LocaleSource.FALLBACK

    def test_multi_subtag_truncation(self, negotiator):
        assert negotiator.resolve("pt-BR-x-custom").resolved == "pt-BR"

    def test_case_and_underscore_insensitive(self, negotiator):
        res = negotiator.resolve("PT_br")
        assert res.resolved == "pt-BR"
        assert res.source is LocaleSource.EXACT

    def test_unsupported_degrades_to_default(self, negotiator):
        res = negotiator.resolve("fr-CA")
        assert res.resolved == "en"
        assert res.source is LocaleSource.DEFAULT
        assert res.unavailable
        assert res.requested == "fr-CA"

    @pytest.mark.parametrize(
        "tag, resolved, unavailable",
        [("es-419", "es", False), ("pt-BR", "en", True), ("FR", "fr", False)],
    )
    def test_european_set(self, tag, resolved, unavailable):
        res = LocaleNegotiator(["en", "es", "fr"], default="en").resolve(tag)
        assert res.resolved == resolved
        assert res.unavailable is unavailable

    def test_no_request_uses_default_silently(self, negotiator):
        for requested in (None, "", "   "):
            res = negotiator.resolve(requested)
            assert res.resolved == "en"
            assert not res.unavailable

    def test_region_is_not_widened(self, negotiator):
        """pt (no region) does not match the more specific pt-BR."""
        res = negotiator.resolve("pt")
        assert res.resolved == "en"
        assert res.unavailable


class TestMatch:
    def test_unsupported_raises(self, negotiator):
        with pytest.raises(UnsupportedLocale) as exc_info:
            negotiator.match("de")
        assert exc_info.value.requested == "de"

    def test_empty_raises(self, negotiator):
        with pytest.raises(UnsupportedLocale):
            negotiator.match("-")


class TestConstruction:
    def test_default_is_always_supported(self):
        negotiator = LocaleNegotiator(["es"], default="en")
        assert negotiator.supported == ["es", "en"]
        assert negotiator.resolve("en-GB").resolved == "en"

    def test_supported_keeps_declared_spelling(self):
        negotiator = LocaleNegotiator(["zh-Hant"], default="zh-Hant")
        assert negotiator.default == "zh-Hant"
        assert negotiator.resolve("zh-hant-tw").resolved == "zh-Hant"


class TestMeta:
    def test_to_meta(self):
        res = LocaleResolution(resolved="es", source=LocaleSource.FALLBACK)
        assert res.to_meta() == {"openai/locale": "es"}

    def test_to_meta_unavailable(self):
        res = LocaleResolution(
            requested="fr", resolved="en", source=LocaleSource.DEFAULT, unavailable=True
        )
        assert res.to_meta() == {
            "openai/locale": "en",
            "openai/locale/unavailable": True,
        }

    def test_requested_locale_current_key(self):
        assert requested_locale({"openai/locale": "es-419"}) == "es-419"

    def test_requested_locale_legacy_key(self):
        assert requested_locale({"webplus/i18n": "fr"}) == "fr"

    def test_requested_locale_prefers_current_key(self):
        meta = {"openai/locale": "es", "webplus/i18n": "fr"}
        assert requested_locale(meta) == "es"

    def test_requested_locale_missing(self):
        assert requested_locale(None) is None
        assert requested_locale({"openai/locale": " "}) is None
        assert requested_locale({"openai/locale": 42}) is None

    def test_normalize_tag(self):
        assert normalize_tag(" en_US ") == "en-us"
