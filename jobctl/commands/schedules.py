"""Schedules Commands - Recurring job definitions"""

import json

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.base import JobQueueAPIError
from ..client.endpoints import JobQueueClient
from ..utils.config_manager import config
from ..utils.formatting import (
    create_schedule_stats_panel,
    create_schedules_table,
    print_error,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="schedules", help="Recurring job definitions")


@app.command("list")
def list_schedules():
    """📋 List recurring definitions"""
    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            data = client.list_schedules()
    except JobQueueAPIError as e:
        print_error(f"Failed to list schedules: {e}")
        raise typer.Exit(1) from None

    schedules = data.get("schedules", [])
    if not schedules:
        console.print("📭 [yellow]No schedules defined[/yellow]")
        return

    console.print(create_schedules_table(schedules))


@app.command("show")
def show_schedule(schedule_id: str = typer.Argument(..., help="Schedule ID")):
    """🔍 Show a recurring definition"""
    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            schedule = client.get_schedule(schedule_id)
    except JobQueueAPIError as e:
        print_error(f"Failed to get schedule: {e}")
        raise typer.Exit(1) from None

    console.print(
        Panel(
            f"• ID: [cyan]{schedule.get('id')}[/cyan]\n"
            f"• Name: {schedule.get('name')}\n"
            f"• Type: [magenta]{schedule.get('type')}[/magenta]\n"
            f"• Expression: [yellow]{schedule.get('schedule_expression')}[/yellow]\n"
            f"• Priority: {schedule.get('priority')}\n"
            f"• Active: {schedule.get('is_active')}\n"
            f"• Last Run: {schedule.get('last_run') or '—'}\n"
            f"• Next Run: [green]{schedule.get('next_run') or '—'}[/green]\n\n"
            f"[bold]Config[/bold]\n{json.dumps(schedule.get('config'), indent=2)}",
            title="Schedule",
            border_style="cyan",
        )
    )


@app.command("add")
def add_schedule(
    name: str = typer.Argument(..., help="Definition name"),
    type: str = typer.Argument(..., help="Job type to enqueue"),
    expression: str = typer.Argument(
        ..., help="minute hour day-of-month month day-of-week, e.g. '0 2 * * *'"
    ),
    config_json: str = typer.Option("{}", "--config", "-c", help="JSON payload template"),
    priority: int = typer.Option(5, "--priority", help="Priority of produced jobs"),
    inactive: bool = typer.Option(False, "--inactive", help="Create paused"),
):
    """➕ Add a recurring definition"""
    try:
        job_config = json.loads(config_json)
    except json.JSONDecodeError as e:
        print_error(f"Config is not valid JSON: {e}")
        raise typer.Exit(1) from None

    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            result = client.create_schedule(
                name,
                type,
                expression,
                config=job_config,
                priority=priority,
                is_active=not inactive,
            )
    except JobQueueAPIError as e:
        print_error(f"Failed to add schedule: {e}")
        raise typer.Exit(1) from None

    print_success(
        f"Scheduled '{name}' ({result.get('schedule_id')}), next run {result.get('next_run')}"
    )


@app.command("remove")
def remove_schedule(schedule_id: str = typer.Argument(..., help="Schedule ID")):
    """🗑️ Remove a recurring definition"""
    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            result = client.delete_schedule(schedule_id)
    except JobQueueAPIError as e:
        print_error(f"Failed to remove schedule: {e}")
        raise typer.Exit(1) from None

    if result.get("removed"):
        print_success(f"Removed schedule {schedule_id}")
    else:
        print_warning(f"Schedule {schedule_id} did not exist")


@app.command("pause")
def pause_schedule(schedule_id: str = typer.Argument(..., help="Schedule ID")):
    """⏸️ Pause a recurring definition"""
    _set_active(schedule_id, False)
    print_success(f"Paused schedule {schedule_id}")


@app.command("resume")
def resume_schedule(schedule_id: str = typer.Argument(..., help="Schedule ID")):
    """▶️ Resume a paused recurring definition"""
    schedule = _set_active(schedule_id, True)
    print_success(f"Resumed schedule {schedule_id}, next run {schedule.get('next_run')}")


@app.command("stats")
def schedule_stats():
    """📊 Show scheduler statistics"""
    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            stats = client.get_schedule_stats()
    except JobQueueAPIError as e:
        print_error(f"Failed to get schedule stats: {e}")
        raise typer.Exit(1) from None

    console.print(create_schedule_stats_panel(stats))


def _set_active(schedule_id: str, is_active: bool) -> dict:
    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            return client.update_schedule(schedule_id, is_active=is_active)
    except JobQueueAPIError as e:
        print_error(f"Failed to update schedule: {e}")
        raise typer.Exit(1) from None
