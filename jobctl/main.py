"""jobctl - Job Queue CLI Main Entry Point"""

import asyncio
import signal
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

# Import command modules
from .commands import config, jobs, schedules
from .utils.formatting import print_error, print_info, print_success
from .utils.config_manager import config as config_manager
from .client.base import JobQueueAPIError
from .client.endpoints import JobQueueClient

console = Console()

# Create main Typer app
app = typer.Typer(
    name="jobctl",
    help="⚙️ Job Queue - background jobs and recurring schedules",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(jobs.app, name="jobs")
app.add_typer(schedules.app, name="schedules")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check API connectivity and worker health"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with JobQueueClient(base_url) as client:
            health = client.health_check()
    except JobQueueAPIError as e:
        print_error(f"Failed to connect: {e}")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure the Job Queue API is running at:\n"
            f"[blue]{base_url}[/blue]\n\n"
            f"You can update the API URL with:\n"
            f"[cyan]jobctl config set api.base_url <url>[/cyan]",
            title="Connection Error",
            border_style="red"
        ))
        raise typer.Exit(1) from None

    worker = health.get("worker") or {}
    console.print(Panel(
        f"🚀 [green]Connected Successfully![/green]\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• API URL: [blue]{base_url}[/blue]\n"
        f"• Active Workers: [cyan]{worker.get('active_workers', 0)}[/cyan]\n"
        f"• Queue Depth: [cyan]{worker.get('queue_depth', 0)}[/cyan]\n"
        f"• Stuck Jobs: [red]{worker.get('stuck_jobs_count', 0)}[/red]",
        title="System Status",
        border_style="green" if health.get("ok") else "red"
    ))


@app.command()
def worker(
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", "-b", min=1, max=10, help="Jobs claimed per tick"
    ),
    poll_interval: Optional[float] = typer.Option(
        None, "--poll-interval", help="Seconds between ticks"
    ),
    once: bool = typer.Option(False, "--once", help="Run a single tick and exit"),
):
    """🛠️ Run the background worker until SIGINT/SIGTERM"""
    from jobqueue.config.settings import settings

    overrides = {}
    if batch_size is not None:
        overrides["job_batch_size"] = batch_size
    if poll_interval is not None:
        overrides["job_poll_interval_s"] = poll_interval

    processed = asyncio.run(_run_worker(settings.model_copy(update=overrides), once))
    if once:
        print_success(f"Processed {processed} job(s)")


@app.command()
def scheduler(
    once: bool = typer.Option(False, "--once", help="Run a single tick and exit"),
):
    """⏰ Run the recurring job scheduler until SIGINT/SIGTERM"""
    from jobqueue.config.settings import settings

    fired = asyncio.run(_run_scheduler(settings, once))
    if once:
        print_success(f"Enqueued {fired} scheduled job(s)")


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(Panel(
        f"⚙️ [bold cyan]jobctl[/bold cyan]\n\n"
        f"• Version: [green]{__version__}[/green]\n"
        f"• Type: [yellow]Command Line Interface[/yellow]",
        title="Version Info",
        border_style="cyan"
    ))


def _version_callback(value: bool):
    if value:
        from . import __version__
        console.print(f"jobctl v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """
    ⚙️ jobctl - operate the job queue

    Run the worker and scheduler loops, inspect and retry jobs, and manage
    recurring schedules.
    """


async def _run_worker(settings, once: bool) -> int:
    from jobqueue.config.logging import bind_process_context, setup_logging
    from jobqueue.infra.database import Database
    from jobqueue.v1.core.registries import job_registry
    from jobqueue.v1.jobs.registry_init import register_job_handlers
    from jobqueue.v1.jobs.worker import JobWorker

    setup_logging()
    database = Database(settings)
    try:
        register_job_handlers(settings, database)
        if settings.environment != "development":
            job_registry.freeze()

        job_worker = JobWorker(settings, database)
        bind_process_context(role="worker", worker_id=job_worker.worker_id)

        if once:
            return await job_worker.tick()

        await _run_until_signalled(job_worker)
        return job_worker.processed
    finally:
        await database.close()


async def _run_scheduler(settings, once: bool) -> int:
    from jobqueue.config.logging import bind_process_context, setup_logging
    from jobqueue.infra.database import Database
    from jobqueue.v1.jobs.registry_init import register_job_handlers
    from jobqueue.v1.scheduler.service import JobScheduler

    setup_logging()
    bind_process_context(role="scheduler")
    database = Database(settings)
    try:
        # Same handler set as the workers, so defaults only cover runnable types
        job_types = register_job_handlers(settings, database)
        job_scheduler = JobScheduler(settings, database, job_types=job_types)

        if once:
            if settings.scheduler_load_defaults:
                await job_scheduler.load_default_schedules()
            return await job_scheduler.tick()

        await _run_until_signalled(job_scheduler)
        return 0
    finally:
        await database.close()


async def _run_until_signalled(service) -> None:
    """Run ``service.start()`` and stop it gracefully on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    stopping: set[asyncio.Task] = set()

    def request_stop(signame: str) -> None:
        console.print(f"[yellow]Received {signame}, shutting down gracefully...[/yellow]")
        task = loop.create_task(service.stop())
        stopping.add(task)
        task.add_done_callback(stopping.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_stop, sig.name)

    try:
        await service.start()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


if __name__ == "__main__":
    app()
