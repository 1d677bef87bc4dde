"""
Tests for Navigation Scripts
============================
"""

import pytest

from phonepool.capture.navigation import (
    DHL_PAKET_PACKAGE,
    DHL_TRACKING_SCRIPT,
    ClearText,
    KeyEvent,
    NavigationScript,
    NavigationScriptBook,
    ScriptStep,
    Tap,
    quote_input_text,
)


class TestQuoteInputText:
    def test_plain(self):
        assert quote_input_text("00340434161234567890") == "'00340434161234567890'"

    def test_spaces_become_input_escapes(self):
        assert quote_input_text("JJD 0001") == "'JJD%s0001'"

    def test_single_quote_cannot_break_out(self):
        assert quote_input_text("a'; rm -rf /") == "'a'\\'';%srm%s-rf%s/'"


class TestDhlTrackingScript:
    def test_renders_expected_sequence(self):
        rendered = DHL_TRACKING_SCRIPT.render("00340434161234567890")

        assert rendered == [
            ("input tap 70 1850", 2.0),
            ("input tap 540 300", 1.0),
            ("input text ''", 0.5),
            ("input text '00340434161234567890'", 1.0),
            ("input keyevent 66", 3.0),
            ("input tap 540 500", 3.0),
        ]

    def test_total_delay(self):
        assert DHL_TRACKING_SCRIPT.total_delay == pytest.approx(10.5)


class TestNavigationScriptBook:
    """Tests for per-provider script lookup."""

    def test_default_script_for_any_provider(self):
        book = NavigationScriptBook.default()
        assert book.lookup("DuoPlus", DHL_PAKET_PACKAGE) is DHL_TRACKING_SCRIPT
        assert book.lookup("VMOS Cloud", DHL_PAKET_PACKAGE) is DHL_TRACKING_SCRIPT

    def test_unknown_package(self):
        assert NavigationScriptBook.default().lookup("DuoPlus", "com.other.app") is None

    def test_provider_override_wins(self):
        book = NavigationScriptBook.default()
        tall = NavigationScript(
            name="dhl-tall-screen",
            steps=(
                ScriptStep(Tap(70, 2300), 2.0),
                ScriptStep(ClearText(), 0.5),
                ScriptStep(KeyEvent(66), 3.0),
            ),
        )
        book.register(tall, DHL_PAKET_PACKAGE, provider="GeeLark")

        assert book.lookup("GeeLark", DHL_PAKET_PACKAGE) is tall
        assert book.lookup("DuoPlus", DHL_PAKET_PACKAGE) is DHL_TRACKING_SCRIPT
