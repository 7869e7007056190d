"""
Rendering of audit results.

Three formats are supported: a rich terminal report, plain text without
markup and a JSON document for tooling.
"""

import json
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from reqcheck.config import AuditSettings
from reqcheck.requirements import Requirement, RequirementRegistry
from reqcheck.ui import SYMBOLS, make_console


class Reporter:
    """Renders a RequirementRegistry."""

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        """
        Args:
            console: Rich console to write to (a themed one is created if None)
            verbose: Also list the checks that passed
        """
        self.console = console or make_console()
        self.verbose = verbose

    def render(self, registry: RequirementRegistry, settings: Optional[AuditSettings] = None) -> None:
        """Display the report using rich formatting."""
        self.console.print()
        self.console.rule("[brand]Requirements check[/]", style="panel_border")

        if settings is not None:
            self.console.print(f"  [muted]Project:[/] {escape(str(settings.root_dir))}")
            self.console.print(f"  [muted]Environment:[/] {escape(settings.app_env)}")
        php_ini = self._php_ini_path(registry)
        self.console.print(f"  [muted]php.ini used:[/] {escape(php_ini) if php_ini else 'none'}")
        self.console.print()

        for fault in registry.faults:
            self.console.print(Panel(escape(str(fault)), title=f"[error]─ {SYMBOLS['fault']} Configuration error [/]", border_style="error"))

        failed = registry.failed_mandatory_requirements()
        if failed:
            self.console.print(self._table("Mandatory requirements", failed, "error", SYMBOLS["error"]))

        warnings = registry.failed_recommendations()
        if warnings:
            self.console.print(self._table("Recommendations", warnings, "warning", SYMBOLS["warning"]))

        if self.verbose:
            passed = [r for r in registry if r.satisfied]
            if passed:
                self.console.print(self._table("Passed checks", passed, "success", SYMBOLS["success"], show_help=False))

        if registry.has_php_config_issue():
            self.console.print(
                "[muted]* Changes to the php.ini file must be done in "
                f"{escape(php_ini) if php_ini else 'the php.ini file of your installation'}.[/]"
            )
            self.console.print()

        if registry.is_fully_satisfied():
            self.console.print(f"[success_symbol]{SYMBOLS['success']}[/] [success]Your system is ready to run the application.[/]")
            if warnings:
                self.console.print(f"  [secondary]{len(warnings)} recommendation(s) could improve your setup.[/]")
        else:
            self.console.print(
                f"[error_symbol]{SYMBOLS['error']}[/] [error]Your system is not ready to run the application: "
                f"{len(failed)} mandatory requirement(s) failed.[/]"
            )
        self.console.print()

    def _table(self, title: str, requirements: List[Requirement], style: str, icon: str, show_help: bool = True) -> Table:
        table = Table(title=f"[{style}]{title}[/]", title_justify="left", show_header=False, box=None, padding=(0, 1))
        table.add_column("Status", width=2)
        table.add_column("Check", ratio=1)

        for requirement in requirements:
            table.add_row(f"[{style}]{icon}[/]", f"[bold]{escape(requirement.test_message)}[/bold]")
            if show_help:
                table.add_row("", f"[secondary]{escape(requirement.help_text)}[/]")
        return table

    @staticmethod
    def _php_ini_path(registry: RequirementRegistry) -> Optional[str]:
        if registry.config_source is None:
            return None
        return registry.config_source.php_ini_path()


def format_plain(registry: RequirementRegistry, verbose: bool = False) -> str:
    """Render the report as plain text, without any markup."""
    lines = ["Requirements check", ""]

    for fault in registry.faults:
        lines.append(f"[ERROR] {fault}")

    for label, requirements in (
        ("FAILED", registry.failed_mandatory_requirements()),
        ("WARNING", registry.failed_recommendations()),
    ):
        for requirement in requirements:
            lines.append(f"[{label}] {requirement.test_message}")
            lines.append(f"    {requirement.help_text}")

    if verbose:
        for requirement in registry:
            if requirement.satisfied:
                lines.append(f"[OK] {requirement.test_message}")

    lines.append("")
    if registry.is_fully_satisfied():
        lines.append("[OK] Your system is ready to run the application.")
    else:
        count = len(registry.failed_mandatory_requirements())
        lines.append(f"[ERROR] Your system is not ready to run the application: {count} mandatory requirement(s) failed.")
    return "\n".join(lines)


def format_json(registry: RequirementRegistry, settings: Optional[AuditSettings] = None) -> str:
    """Render the report as a JSON document."""
    output = registry.to_dict()
    output["php_ini"] = Reporter._php_ini_path(registry)
    if settings is not None:
        output["settings"] = settings.to_dict()
    return json.dumps(output, indent=2)
