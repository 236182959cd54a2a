"""
Rich Terminal Display Components.

Console UI for:
- Sync progress bar
- Run summaries and log tables
- Status messages
"""

from __future__ import annotations

from typing import Any, Iterable

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table

from inventory_sync.models import SyncLogEntry


console = Console()


class ProgressDisplay:
    """
    Rich terminal UI for sync progress.

    The total is an estimate that firms up as pages come back, so the
    bar's total is updated on every call.

    Example:
        with ProgressDisplay() as display:
            display.start(full_sync=False, estimated_total=5000)
            display.update(processed=20, total=5000, added=3, updated=0, page=1)
    """

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            console=console,
        )
        self._live: Live | None = None
        self._task_id: Any = None
        self._stats: dict[str, Any] = {}

    def start(self, full_sync: bool, estimated_total: int) -> None:
        """Start the progress display."""
        self._stats = {
            "mode": "FULL SYNC" if full_sync else "SYNC",
            "added": 0,
            "updated": 0,
            "page": 1,
            "errors": 0,
        }
        self._task_id = self.progress.add_task(
            f"[cyan]{self._stats['mode']}",
            total=estimated_total,
        )
        self._live = Live(
            self._build_display(),
            console=console,
            refresh_per_second=4,
        )
        self._live.start()

    def stop(self) -> None:
        """Stop the progress display."""
        if self._live:
            self._live.stop()
            self._live = None

    def update(
        self,
        processed: int,
        total: int,
        added: int,
        updated: int,
        page: int,
        errors: int = 0,
    ) -> None:
        """Update progress display."""
        self._stats.update(added=added, updated=updated, page=page, errors=errors)
        if self._task_id is not None:
            self.progress.update(
                self._task_id,
                completed=processed,
                total=max(total, processed),
            )
        if self._live:
            self._live.update(self._build_display())

    def _build_display(self) -> Panel:
        stats_table = Table.grid(padding=(0, 3))
        for _ in range(4):
            stats_table.add_column(justify="center")
        stats_table.add_row(
            f"[cyan]Page:[/cyan] {self._stats.get('page', 1)}",
            f"[green]Added:[/green] {self._stats.get('added', 0):,}",
            f"[yellow]Updated:[/yellow] {self._stats.get('updated', 0):,}",
            f"[red]Errors:[/red] {self._stats.get('errors', 0):,}",
        )
        return Panel(
            Group(self.progress, stats_table),
            title=f"[bold white]Inventory Sync - {self._stats.get('mode', 'SYNC')}[/bold white]",
            border_style="blue",
            padding=(1, 2),
        )

    def __enter__(self) -> "ProgressDisplay":
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()


def print_summary(stats: dict[str, Any], title: str = "Sync Summary") -> None:
    """Print a two-column summary table."""
    table = Table(title=title, border_style="green")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    for metric, value in stats.items():
        if isinstance(value, float):
            value = f"{value:.1f}"
        elif isinstance(value, int) and not isinstance(value, bool):
            value = f"{value:,}"
        table.add_row(metric, str(value))

    console.print(table)


def print_log_entries(entries: Iterable[SyncLogEntry]) -> None:
    """Print sync log entries, most recent first."""
    table = Table(title="Sync Log", border_style="blue")
    table.add_column("Date")
    table.add_column("Status")
    table.add_column("Added", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Details", overflow="fold")

    for entry in entries:
        table.add_row(
            entry.timestamp,
            format_status(entry.status),
            f"{entry.products_added:,}",
            f"{entry.products_updated:,}",
            entry.details,
        )

    console.print(table)


def format_status(status: str) -> str:
    """Format status with color."""
    colors = {
        "success": "[green]✓ success[/green]",
        "completed": "[green]✓ completed[/green]",
        "in_progress": "[yellow]⟳ in progress[/yellow]",
        "error": "[red]✗ error[/red]",
        "idle": "[dim]idle[/dim]",
    }
    return colors.get(status, status)


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red bold]Error:[/red bold] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green bold]✓[/green bold] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow bold]⚠[/yellow bold] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")
