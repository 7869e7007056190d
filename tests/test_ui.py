"""Tests for the reqcheck UI module."""

import io

from rich.console import Console

from reqcheck.ui import COLORS, REQCHECK_THEME, SYMBOLS, ReqcheckConsole, console, make_console


class TestTheme:
    def test_symbols_defined(self):
        for symbol in ["success", "error", "warning", "fault"]:
            assert symbol in SYMBOLS

    def test_theme_styles(self):
        for style in ["success", "error", "warning", "secondary", "brand", "muted", "panel_border", "success_symbol", "error_symbol"]:
            assert style in REQCHECK_THEME.styles
        assert REQCHECK_THEME.styles["error"].color.name == COLORS["error"]


class TestConsole:
    def setup_method(self):
        self.saved_console = console._console
        console._console = make_console(file=io.StringIO(), width=120, color_system=None)

    def teardown_method(self):
        console._console = self.saved_console

    def test_singleton(self):
        assert ReqcheckConsole() is ReqcheckConsole()
        assert ReqcheckConsole() is console

    def test_rich_console(self):
        assert isinstance(console.rich, Console)

    def test_error_with_details(self):
        console.error("Cannot run the requirements check", details="PHP interpreter not found: php")

        output = console.rich.file.getvalue()
        assert "✗ Cannot run the requirements check" in output
        assert "PHP interpreter not found: php" in output

    def test_messages_are_escaped(self):
        console.error("[red]not markup[/red]")
        assert "[red]not markup[/red]" in console.rich.file.getvalue()
