"""Rich Formatting Utilities for CLI Output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "completed": "green",
    "failed": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def format_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_jobs_table(jobs: list[dict[str, Any]], show_payloads: bool = False) -> Table:
    """Create a formatted table for jobs list"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Priority", justify="right", style="yellow")
    table.add_column("Attempts", justify="center")
    table.add_column("Scheduled For", justify="left", style="white")
    table.add_column("Error", justify="left", style="red")
    if show_payloads:
        table.add_column("Payload", justify="left", style="dim")

    for job in jobs:
        row = [
            job.get("id", "")[:8],  # Short ID
            job.get("type", ""),
            format_status(job.get("status", "")),
            str(job.get("priority", 0)),
            f"{job.get('attempts', 0)}/{job.get('max_attempts', 0)}",
            job.get("scheduled_for", "—"),
            _truncate(job.get("error") or "—"),
        ]
        if show_payloads:
            row.append(_truncate(json.dumps(job.get("payload"))))
        table.add_row(*row)

    return table


def create_job_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create formatted panel for queue statistics"""
    by_type = stats.get("by_type") or {}
    type_lines = "\n".join(
        f"  • {job_type}: [cyan]{count}[/cyan]" for job_type, count in by_type.items()
    )

    content = f"""
📊 [bold blue]Queue Statistics[/bold blue]

• Pending: [yellow]{stats.get("pending", 0)}[/yellow]
• Processing: [blue]{stats.get("processing", 0)}[/blue]
• Completed: [green]{stats.get("completed", 0)}[/green]
• Failed: [red]{stats.get("failed", 0)}[/red] ([red]{stats.get("failed_last_hour", 0)}[/red] in the last hour)
• Queue Depth: [cyan]{stats.get("queue_depth", 0)}[/cyan]
• Oldest Pending: [white]{stats.get("oldest_pending_scheduled_for") or "—"}[/white]
"""
    if type_lines:
        content += f"\n[bold]By Type[/bold]\n{type_lines}\n"

    return Panel(content, title="Job Queue", border_style="green")


def display_job_detail(job: dict[str, Any]):
    """Display a single job with payload, result and error"""
    console.print(
        Panel(
            f"• ID: [cyan]{job.get('id')}[/cyan]\n"
            f"• Type: [magenta]{job.get('type')}[/magenta]\n"
            f"• Status: {format_status(job.get('status', ''))}\n"
            f"• Priority: [yellow]{job.get('priority')}[/yellow]\n"
            f"• Attempts: {job.get('attempts')}/{job.get('max_attempts')}\n"
            f"• Scheduled For: {job.get('scheduled_for')}\n"
            f"• Locked By: {job.get('locked_by') or '—'}\n"
            f"• Created: {job.get('created_at')}\n"
            f"• Updated: {job.get('updated_at')}",
            title="Job",
            border_style="cyan",
        )
    )
    console.print(
        Panel(json.dumps(job.get("payload"), indent=2), title="Payload", border_style="blue")
    )
    if job.get("result") is not None:
        console.print(
            Panel(json.dumps(job["result"], indent=2), title="Result", border_style="green")
        )
    if job.get("error"):
        console.print(Panel(job["error"], title="Last Error", border_style="red"))


def create_schedules_table(schedules: list[dict[str, Any]]) -> Table:
    """Create a formatted table for recurring definitions"""
    table = Table(title="Schedules", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Name", justify="left", style="white")
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Expression", justify="center", style="yellow")
    table.add_column("Priority", justify="right")
    table.add_column("Active", justify="center")
    table.add_column("Last Run", justify="left", style="dim")
    table.add_column("Next Run", justify="left", style="green")

    for schedule in schedules:
        table.add_row(
            schedule.get("id", "")[:8],
            schedule.get("name", ""),
            schedule.get("type", ""),
            schedule.get("schedule_expression", ""),
            str(schedule.get("priority", 5)),
            "[green]yes[/green]" if schedule.get("is_active") else "[red]no[/red]",
            schedule.get("last_run") or "—",
            schedule.get("next_run") or "—",
        )

    return table


def create_schedule_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create formatted panel for scheduler statistics"""
    upcoming = "\n".join(
        f"  • {run.get('name')}: [green]{run.get('next_run')}[/green]"
        for run in stats.get("next_runs", [])
    )

    content = f"""
⏰ [bold blue]Scheduler Statistics[/bold blue]

• Definitions: [cyan]{stats.get("total_scheduled_jobs", 0)}[/cyan]
• Active: [green]{stats.get("active_jobs", 0)}[/green]
"""
    if upcoming:
        content += f"\n[bold]Next Runs[/bold]\n{upcoming}\n"

    return Panel(content, title="Schedules", border_style="green")


def _truncate(text: str, length: int = 50) -> str:
    return text[:length] + "..." if len(text) > length else text
