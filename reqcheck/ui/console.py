"""reqcheck console - themed console singleton for setup errors."""

from typing import Optional

from rich.console import Console as RichConsole
from rich.markup import escape

from .theme import REQCHECK_THEME, SYMBOLS


def make_console(**kwargs) -> RichConsole:
    """Create a rich console using the reqcheck theme."""
    return RichConsole(theme=REQCHECK_THEME, **kwargs)


class ReqcheckConsole:
    """Themed console shared by the CLI and the report."""

    _instance: Optional["ReqcheckConsole"] = None

    def __new__(cls) -> "ReqcheckConsole":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._console = make_console()
        return cls._instance

    @property
    def rich(self) -> RichConsole:
        return self._console

    def error(self, message: str, details: Optional[str] = None) -> None:
        self._console.print(f"[error_symbol]{SYMBOLS['error']}[/] [error]{escape(message)}[/]")
        if details:
            self._console.print(f"  [secondary]{escape(details)}[/]")


console = ReqcheckConsole()
