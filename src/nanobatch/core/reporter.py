"""Aggregate task results and show progress as tasks finish."""

from __future__ import annotations

import logging
import threading

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .models import RunSummary, TaskResult

logger = logging.getLogger(__name__)


class ResultReporter:
    """Collect task results in completion order and keep running counts.

    The reporter is the only state shared between concurrently running
    tasks. Updates take a lock, so it is safe to call :meth:`record` from
    worker threads as well as from coroutines on one event loop.

    Attributes:
        console: Where live progress is printed. ``None`` disables output.
        expected: Number of tasks the run will report, for ``[n/N]`` prefixes.
    """

    def __init__(self, console: Console | None = None, expected: int | None = None) -> None:
        self.console = console
        self.expected = expected
        self._lock = threading.Lock()
        self._results: list[TaskResult] = []
        self._succeeded = 0
        self._failed = 0

    def record(self, result: TaskResult) -> None:
        """Add one result and print its status line."""
        with self._lock:
            self._results.append(result)
            if result.success:
                self._succeeded += 1
            else:
                self._failed += 1
            position = len(self._results)

        if result.success:
            logger.info(f"Task {result.index + 1} succeeded: {result.output_filename}")
        else:
            logger.info(f"Task {result.index + 1} failed: {result.error_message}")

        if self.console is not None:
            self.console.print(self._format_line(result, position), highlight=False)

    @property
    def succeeded_count(self) -> int:
        with self._lock:
            return self._succeeded

    @property
    def failed_count(self) -> int:
        with self._lock:
            return self._failed

    def summary(self) -> RunSummary:
        """Snapshot the results recorded so far."""
        with self._lock:
            return RunSummary(results=list(self._results))

    def print_summary(self) -> RunSummary:
        """Print totals and a table of failures, then return the summary."""
        summary = self.summary()
        if self.console is None:
            return summary

        self.console.print()
        self.console.print(
            f"[bold]Done:[/bold] {summary.total_count} tasks, "
            f"[green]{summary.succeeded_count} succeeded[/green], "
            f"[red]{summary.failed_count} failed[/red]"
        )

        if summary.failures:
            table = Table(title="Failed tasks", show_lines=False)
            table.add_column("#", justify="right")
            table.add_column("File")
            table.add_column("Error", overflow="fold")
            for result in sorted(summary.failures, key=lambda r: r.index):
                table.add_row(
                    str(result.index + 1),
                    escape(result.output_filename),
                    escape(result.error_message or ""),
                )
            self.console.print(table)

        return summary

    def _format_line(self, result: TaskResult, position: int) -> str:
        prefix = f"[{position}/{self.expected}] " if self.expected else ""
        if result.success:
            return f"{prefix}[green]✅ {escape(result.output_filename)}[/green]"
        error = escape(result.error_message or "")
        return f"{prefix}[red]❌ {escape(result.output_filename)}:[/red] {error}"
