"""Output formatting for the syncd command line."""

import json
import sys
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats command output as rich text or JSON."""

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Print machine readable JSON instead of text
            quiet: Suppress informational messages
            console: Console for regular output (defaults to stdout)
            err_console: Console for warnings and errors (defaults to stderr)
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def info(self, message: str) -> None:
        """Print an informational message (suppressed in quiet or JSON mode)."""
        if self.quiet or self.json_output:
            return
        self.console.print(message, markup=False)

    def warning(self, message: str) -> None:
        """Print a warning to stderr."""
        if self.quiet:
            return
        self.err_console.print(f"Warning: {message}", style="yellow", markup=False)

    def error(self, message: str) -> None:
        """Print an error to stderr. Never suppressed."""
        self.err_console.print(f"Error: {message}", style="bold red", markup=False)

    def print(self, message: str) -> None:
        """Print a plain line regardless of quiet mode."""
        self.console.print(message, markup=False)

    def output_json(self, data: Any) -> None:
        """Print data as indented JSON."""
        sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")
        sys.stdout.flush()

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled two-column summary table.

        Args:
            title: Table title
            items: List of (label, value) rows
        """
        if self.json_output:
            self.output_json({label: value for label, value in items})
            return
        if self.quiet:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, value)
        self.console.print(table)
