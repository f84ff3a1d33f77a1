"""
Browser handoff primitives for the checkout redirect.

- LaunchNavigator: system URL opener through typer (xdg-open/open/start)
- WebBrowserNavigator: Python's webbrowser controller, new tab
- ConsoleHandoff: prints the URL for manual activation
"""
import webbrowser
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel

from journal_payments.core.redirect import ManualHandoff, Navigator

logger = structlog.get_logger(__name__)


class LaunchNavigator(Navigator):
    """Opens the URL with the platform's default handler."""

    name = "launch"

    def _open(self, url: str) -> bool:
        exit_code = typer.launch(url)
        logger.debug("launch_navigator_opened", exit_code=exit_code)
        return exit_code == 0


class WebBrowserNavigator(Navigator):
    """Opens the URL through the webbrowser module."""

    name = "webbrowser"

    def __init__(self, new: int = 2) -> None:
        super().__init__()
        self.new = new

    def _open(self, url: str) -> bool:
        return webbrowser.open(url, new=self.new)


class ConsoleHandoff(ManualHandoff):
    """Shows the checkout link so the user can open it by hand."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def present(self, url: str) -> None:
        self.console.print(
            Panel(
                f"[bold]To'lov sahifasini oching:[/bold]\n[link={url}]{url}[/link]",
                title="To'lov",
                border_style="yellow",
            )
        )
