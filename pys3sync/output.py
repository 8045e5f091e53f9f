"""Console output helpers for the CLI and the sync engine."""

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from .utils import format_size


class OutputFormatter:
    """Writes user-facing messages with rich.

    In JSON mode only ``output_json`` writes to stdout, so the output
    stays machine-readable; errors always go to stderr.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize output formatter.

        Args:
            json_output: Emit JSON documents instead of human-readable text
            quiet: Suppress non-essential output
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    @property
    def _silent(self) -> bool:
        return self.quiet or self.json_output

    def info(self, message: str) -> None:
        if not self._silent:
            self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if not self._silent:
            self.console.print(f"[green]{message}[/green]", highlight=False)

    def warning(self, message: str) -> None:
        if not self._silent:
            self.console.print(f"[yellow]{message}[/yellow]", highlight=False)

    def error(self, message: str) -> None:
        """Print an error to stderr, even in quiet mode."""
        self.err_console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print(self, message: str = "") -> None:
        if not self._silent:
            self.console.print(message, highlight=False)

    def output_json(self, data: Any) -> None:
        """Print data as an indented JSON document."""
        self.console.print_json(json.dumps(data, default=str))

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled two-column table of key/value pairs.

        Args:
            title: Table title
            items: (label, value) rows
        """
        if self._silent:
            return
        table = Table(title=title, show_header=False, title_justify="left")
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, value)
        self.console.print(table)

    def format_size(self, size_bytes: int) -> str:
        return format_size(size_bytes)
