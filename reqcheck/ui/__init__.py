"""reqcheck UI - themed terminal output."""

from .console import ReqcheckConsole, console, make_console
from .theme import COLORS, REQCHECK_THEME, SYMBOLS

__all__ = ["console", "ReqcheckConsole", "make_console", "COLORS", "SYMBOLS", "REQCHECK_THEME"]
