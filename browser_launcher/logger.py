"""
Logging and console output for Browser Launcher.

Handles logging setup and rich console rendering for the CLI.
"""

import logging
from typing import Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .errors import ConfigCondition
from .types import BrowserDescriptor, BrowserInstance


def setup_logging(debug: bool = False, console: Optional[Console] = None) -> None:
    """Route package logging through rich.

    Args:
        debug: Log at DEBUG instead of WARNING
        console: Console to write to (stderr by default)
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=debug,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    package_logger = logging.getLogger("browser_launcher")
    package_logger.handlers = [handler]
    package_logger.setLevel(logging.DEBUG if debug else logging.WARNING)


CONDITION_STYLES = {
    ConfigCondition.VALID: ("green", "Browser config is valid"),
    ConfigCondition.MISSING: ("cyan", "No browser config yet, it will be created on first use"),
    ConfigCondition.CORRUPT: ("yellow", "Browser config was corrupt and has been cleared"),
    ConfigCondition.STALE: ("yellow", "Browser config was outdated and has been cleared"),
}


class ConsoleReporter:
    """Renders launcher results to the console."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_condition(self, condition: ConfigCondition, path: str) -> None:
        """Print the outcome of a config check.

        Args:
            condition: Condition observed by the config guard
            path: Path of browsers.json
        """
        style, message = CONDITION_STYLES.get(condition, ("white", condition.value))
        self.console.print(f"[{style}]{message}[/{style}]")
        self.console.print(f"  [dim]Location:[/dim] {path}")

    def print_browsers(self, browsers: Sequence[BrowserDescriptor]) -> None:
        """Print discovered browsers as a table."""
        if not browsers:
            self.console.print("[yellow]No browsers found.[/yellow]")
            return

        table = Table(title="Available Browsers")
        table.add_column("Name", style="cyan")
        table.add_column("Version")
        table.add_column("Type", style="dim")
        table.add_column("Command")
        for browser in browsers:
            table.add_row(browser.name, browser.version or "?", browser.type, browser.command)
        self.console.print(table)

    def print_launched(self, instance: BrowserInstance, url: str) -> None:
        """Print details of a launched browser."""
        body = (
            f"[bold]Browser:[/bold] {instance.browser.name} {instance.browser.version}\n"
            f"[bold]URL:[/bold] {url}\n"
            f"[bold]PID:[/bold] {instance.pid}"
        )
        if instance.profile:
            body += f"\n[bold]Profile:[/bold] {instance.profile}"
        self.console.print(Panel(body, title="Launched", border_style="green"))

    def print_error(self, error: str) -> None:
        """Print an error message."""
        self.console.print(f"[bold red]Error:[/bold red] {error}")
