"""Rich console output for the ebook-ai commands."""

import json
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import rich.box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax


class StatusIcon:
    """Icons prefixed to each kind of message."""

    SUCCESS = "[green]✔[/green]"
    ERROR = "[red]✘[/red]"
    WARNING = "[yellow]![/yellow]"
    INFO = "[blue]›[/blue]"
    DEBUG = "[dim]·[/dim]"
    LOADING = "[cyan]…[/cyan]"


class UserFeedback:
    """Writes status messages and generated results to the terminal.

    Status chatter is silenced by ``quiet``; errors and results are always shown.
    Errors go to ``error_console`` (stderr by default) so results can be piped.
    """

    def __init__(self, verbose: bool = False, quiet: bool = False,
                 console: Optional[Console] = None, error_console: Optional[Console] = None):
        self.verbose = verbose
        self.quiet = quiet
        self.console = console or Console()
        self.error_console = error_console or Console(stderr=True)

    def _status(self, icon: str, text: str, details: Optional[str] = None, details_style: str = "dim"):
        if self.quiet:
            return
        self.console.print(f"{icon} {text}")
        if details and self.verbose:
            self._details(self.console, details, details_style)

    def success(self, message: str, details: Optional[str] = None):
        self._status(StatusIcon.SUCCESS, message, details, "green")

    def info(self, message: str, details: Optional[str] = None):
        self._status(StatusIcon.INFO, message, details, "blue")

    def warning(self, message: str, suggestion: Optional[str] = None):
        self._status(StatusIcon.WARNING, f"[yellow]Warning:[/yellow] {message}")
        if suggestion and not self.quiet:
            self.console.print(f"    [yellow]→ {suggestion}[/yellow]")

    def debug(self, message: str, details: Optional[str] = None):
        if self.verbose:
            self._status(StatusIcon.DEBUG, f"[dim]{message}[/dim]", details)

    def error(self, message: str, suggestion: Optional[str] = None, details: Optional[str] = None):
        """Print an error with an optional hint. Shown even in quiet mode."""
        self.error_console.print(f"{StatusIcon.ERROR} [bold red]Error:[/bold red] {message}")
        if suggestion:
            self.error_console.print(f"    [yellow]Suggestion:[/yellow] {suggestion}")
        if details and self.verbose:
            self._details(self.error_console, details, "red")

    def section_header(self, title: str):
        if not self.quiet:
            self.console.print(Rule(f"[bold]{title}[/bold]", style="blue"))

    def summary_panel(self, title: str, items: Dict[str, Any], style: str = "green"):
        """Key/value panel, e.g. the loaded configuration or token usage."""
        if self.quiet:
            return
        lines = "\n".join(f"[bold]{key}:[/bold] {value}" for key, value in items.items())
        self.console.print(Panel(lines, title=title, border_style=style, expand=False))

    @contextmanager
    def status_spinner(self, message: str) -> Iterator[Any]:
        """Spinner shown while a provider call is in flight."""
        if self.quiet:
            yield None
            return
        with self.console.status(f"{StatusIcon.LOADING} {message}", spinner="dots") as status:
            yield status

    def result_text(self, title: str, text: str):
        """Generated summary, rendered as markdown."""
        self.console.print(Rule(title, style="magenta"))
        self.console.print(Markdown(text))

    def result_json(self, title: str, data: Any):
        """Generated mind-map data, pretty printed."""
        rendered = json.dumps(data, indent=2, ensure_ascii=False)
        self.console.print(Panel(
            Syntax(rendered, "json", word_wrap=True),
            title=title,
            border_style="cyan",
            box=rich.box.ROUNDED,
        ))

    @staticmethod
    def _details(console: Console, details: str, style: str):
        for line in filter(str.strip, details.splitlines()):
            console.print(f"    [{style}]{line}[/{style}]")
