"""Rich-powered console output."""

from __future__ import annotations

from typing import Any, Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

_console = Console()

_STATUS_STYLES = {
    "success": "bold green",
    "partial": "bold yellow",
    "failed": "bold red",
    "running": "cyan",
}


def print_banner(target_url: str) -> None:
    """Display the startup banner."""
    _console.print(
        Panel.fit(
            f"[bold cyan]spscjobs[/bold cyan]  —  SPSC job notice scraper\n[dim]{target_url}[/dim]",
            border_style="cyan",
        )
    )


def print_run_report(run: dict[str, Any]) -> None:
    """Display a summary table for one run document."""
    status = run.get("status", "?")
    style = _STATUS_STYLES.get(status, "")
    table = Table(title="Run Report", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Status", f"[{style}]{status}[/{style}]" if style else status)
    table.add_row("Jobs found", str(run.get("jobs_found", 0)))
    table.add_row("Inserted", str(run.get("jobs_inserted", 0)))
    table.add_row("Skipped (duplicates)", str(run.get("jobs_skipped", 0)))
    table.add_row("Parsing errors", str(run.get("parsing_errors_count", 0)))
    table.add_row("Run ID", str(run.get("run_id", "")))
    table.add_row("Started", str(run.get("started_at", "")))
    table.add_row("Finished", str(run.get("finished_at") or "—"))
    if run.get("fatal_error"):
        table.add_row("Fatal error", str(run["fatal_error"]))

    _console.print()
    _console.print(table)
    _console.print()


def print_runs(runs: Iterable[dict[str, Any]], title: str = "Recent Runs") -> None:
    """Display one line per run."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    for name in ("Run ID", "Status", "Found", "Inserted", "Skipped", "Errors", "Finished"):
        table.add_column(name, justify="right" if name not in ("Run ID", "Status") else "left")
    for run in runs:
        status = run.get("status", "?")
        style = _STATUS_STYLES.get(status, "")
        table.add_row(
            str(run.get("run_id", "")),
            f"[{style}]{status}[/{style}]" if style else status,
            str(run.get("jobs_found", 0)),
            str(run.get("jobs_inserted", 0)),
            str(run.get("jobs_skipped", 0)),
            str(run.get("parsing_errors_count", 0)),
            str(run.get("finished_at") or "—"),
        )
    _console.print(table)


def print_kill_switch(status: dict[str, Any]) -> None:
    enabled = status.get("enabled") is not False
    label = "[bold green]ENABLED[/bold green]" if enabled else "[bold red]DISABLED[/bold red]"
    _console.print(f"Scraper: {label}")
    if status.get("reason"):
        _console.print(f"Reason:  {status['reason']}")
    if status.get("updated_at"):
        _console.print(f"Updated: {status['updated_at']}")
