"""Jobs Commands - Queue inspection and administration"""

import json

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.base import JobQueueAPIError
from ..client.endpoints import JobQueueClient
from ..utils.config_manager import config
from ..utils.formatting import (
    create_job_stats_panel,
    create_jobs_table,
    display_job_detail,
    print_error,
    print_info,
    print_success,
)

console = Console()
app = typer.Typer(name="jobs", help="Job queue inspection and administration")


@app.command("stats")
def job_stats():
    """📊 Show queue statistics"""
    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            stats = client.get_job_stats()
    except JobQueueAPIError as e:
        print_error(f"Failed to get job stats: {e}")
        raise typer.Exit(1) from None

    console.print(create_job_stats_panel(stats))


@app.command("list")
def list_jobs(
    status: list[str] | None = typer.Option(
        None, "--status", "-s", help="Filter by status (repeatable)"
    ),
    type: str | None = typer.Option(None, "--type", "-t", help="Filter by job type"),
    limit: int | None = typer.Option(None, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List jobs, newest first"""
    base_url = config.get("api.base_url")
    limit = limit or config.get("display.jobs_per_page", 20)

    try:
        with JobQueueClient(base_url) as client:
            data = client.list_jobs(status=status, type=type, limit=limit, offset=offset)
    except JobQueueAPIError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None

    jobs = data.get("jobs", [])
    total = data.get("total", len(jobs))

    if not jobs:
        console.print(
            Panel(
                "📭 [yellow]No jobs found![/yellow]\n\n"
                f"• Status: {', '.join(status) if status else 'any'}\n"
                f"• Type: {type or 'any'}",
                title="Empty Results",
                border_style="yellow",
            )
        )
        return

    console.print(create_jobs_table(jobs, config.get("display.show_payloads", False)))
    console.print(f"\n📊 Showing [cyan]{len(jobs)}[/cyan] of [yellow]{total}[/yellow] jobs")

    if offset + limit < total:
        console.print(f"💡 Use [cyan]--offset {offset + limit}[/cyan] to see more")


@app.command("show")
def show_job(job_id: str = typer.Argument(..., help="Job ID to show")):
    """🔍 Show a job with its payload, result and last error"""
    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            job = client.get_job(job_id)
    except JobQueueAPIError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None

    display_job_detail(job)


@app.command("enqueue")
def enqueue_job(
    type: str = typer.Argument(..., help="Job type"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON payload"),
    priority: int = typer.Option(0, "--priority", help="Higher is claimed first"),
    delay: float = typer.Option(0, "--delay", help="Seconds before the job is claimable"),
    max_attempts: int | None = typer.Option(None, "--max-attempts", help="Attempt ceiling"),
):
    """➕ Enqueue a job"""
    try:
        parsed_payload = json.loads(payload)
    except json.JSONDecodeError as e:
        print_error(f"Payload is not valid JSON: {e}")
        raise typer.Exit(1) from None

    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            result = client.enqueue_job(
                type,
                parsed_payload,
                priority=priority,
                delay_seconds=delay,
                max_attempts=max_attempts,
            )
    except JobQueueAPIError as e:
        print_error(f"Failed to enqueue job: {e}")
        raise typer.Exit(1) from None

    print_success(f"Enqueued {type} job {result.get('job_id')}")


@app.command("retry")
def retry_job(job_id: str = typer.Argument(..., help="Failed job ID")):
    """🔁 Reset a failed job to pending"""
    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            client.retry_job(job_id)
    except JobQueueAPIError as e:
        print_error(f"Failed to retry job: {e}")
        raise typer.Exit(1) from None

    print_success(f"Job {job_id} reset to pending")


@app.command("retry-failed")
def retry_failed(
    max_attempts: int = typer.Option(5, "--max-attempts", help="Raised attempt ceiling"),
    limit: int = typer.Option(50, "--limit", "-l", help="Maximum jobs to reset"),
):
    """🔁 Reset terminal failures to pending"""
    base_url = config.get("api.base_url")

    try:
        with JobQueueClient(base_url) as client:
            result = client.retry_failed(max_attempts=max_attempts, limit=limit)
    except JobQueueAPIError as e:
        print_error(f"Failed to retry failed jobs: {e}")
        raise typer.Exit(1) from None

    print_success(f"Reset {result.get('affected', 0)} failed jobs to pending")


@app.command("cleanup")
def cleanup_jobs(
    older_than_days: float = typer.Option(
        30, "--older-than-days", "-d", help="Delete completed jobs older than this"
    ),
):
    """🧹 Delete old completed jobs"""
    base_url = config.get("api.base_url")
    print_info(f"Deleting completed jobs older than {older_than_days} days")

    try:
        with JobQueueClient(base_url) as client:
            result = client.cleanup_jobs(older_than_days=older_than_days)
    except JobQueueAPIError as e:
        print_error(f"Failed to clean up jobs: {e}")
        raise typer.Exit(1) from None

    print_success(f"Deleted {result.get('affected', 0)} completed jobs")
