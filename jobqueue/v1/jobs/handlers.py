"""
Job handlers for the job type catalogue.

Handlers implement the JobHandler protocol and are registered in the job
registry. The catalogue handlers validate their payload shape and delegate
the actual effect to a collaborator (email transport, backup service, file
store, report generator, scraper) supplied by the host application.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field
from pydantic import ValidationError as PayloadValidationError

from jobqueue.config.settings import Settings
from jobqueue.infra.database import Database
from jobqueue.v1.core.exceptions import NonRetryableJobError
from jobqueue.v1.jobs.service import QueueManager

logger = logging.getLogger(__name__)


# Collaborator protocols


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str) -> bool:
        """Send one email; False means the transport rejected it."""
        ...


class BackupService(Protocol):
    async def create_backup(
        self, kind: str, user_id: str | None = None
    ) -> dict[str, Any]:
        """Run a backup and return ``{"success": bool, "error": str | None, ...}``."""
        ...


class FileStore(Protocol):
    async def delete_files(self, files: list[str]) -> None:
        ...


class ReportGenerator(Protocol):
    async def generate(
        self, report_type: str, start: datetime, end: datetime
    ) -> dict[str, Any]:
        ...


class JobScraper(Protocol):
    async def scrape(self, config: dict[str, Any]) -> dict[str, Any]:
        """Scrape with the given config, returning ``{"success", "jobs_scraped", "errors"}``."""
        ...


# Payload shapes


class SendEmailPayload(BaseModel):
    to: str = Field(..., min_length=3)
    subject: str
    html: str


class BackupPayload(BaseModel):
    type: Literal["manual", "scheduled"] = "manual"
    user_id: str | None = None


class CleanupFilesPayload(BaseModel):
    files: list[str] = Field(default_factory=list)
    type: Literal["temp", "orphaned", "old"] = "temp"


class DateRange(BaseModel):
    start: datetime
    end: datetime


class ReportPayload(BaseModel):
    report_type: Literal["user_activity", "job_analytics", "system_health"]
    date_range: DateRange


class ScrapingPayload(BaseModel):
    search_query: str
    location: str = "United States"
    limit: int = Field(default=100, ge=1, le=1000)
    sources: list[str] = Field(default_factory=lambda: ["indeed", "linkedin"])

    model_config = {"extra": "allow"}


def parse_payload(model: type[BaseModel], payload: Any) -> Any:
    """Validate a payload, treating a malformed one as non-retryable."""
    try:
        return model.model_validate(payload)
    except PayloadValidationError as e:
        raise NonRetryableJobError(
            f"Invalid {model.__name__}: {e.error_count()} validation error(s)"
        ) from e


class SendEmailHandler:
    """
    Job handler for outbound email.

    Payload expected:
    {
        "to": "user@example.com",
        "subject": "Welcome",
        "html": "<p>...</p>"
    }
    """

    def __init__(self, sender: EmailSender):
        self.sender = sender

    async def handle(self, payload: Any) -> dict[str, Any] | None:
        email = parse_payload(SendEmailPayload, payload)

        sent = await self.sender.send(email.to, email.subject, email.html)
        if not sent:
            raise RuntimeError("Failed to send email")

        return {"status": "sent", "to": email.to}


class ProcessBackupHandler:
    """Job handler that runs a manual or scheduled backup."""

    def __init__(self, backups: BackupService):
        self.backups = backups

    async def handle(self, payload: Any) -> dict[str, Any] | None:
        request = parse_payload(BackupPayload, payload)

        outcome = await self.backups.create_backup(request.type, request.user_id)
        if not outcome.get("success"):
            raise RuntimeError(outcome.get("error") or "Backup failed")

        return {"status": "completed", "backup": outcome}


class CleanupFilesHandler:
    """Job handler that deletes stored files (temp, orphaned or old)."""

    def __init__(self, store: FileStore):
        self.store = store

    async def handle(self, payload: Any) -> dict[str, Any] | None:
        request = parse_payload(CleanupFilesPayload, payload)

        if request.files:
            await self.store.delete_files(request.files)

        return {"status": "completed", "deleted": len(request.files)}


class GenerateReportHandler:
    """
    Job handler for report generation.

    Payload expected:
    {
        "report_type": "user_activity" | "job_analytics" | "system_health",
        "date_range": {"start": "2024-01-01T00:00:00Z", "end": "..."}
    }
    """

    def __init__(self, reports: ReportGenerator):
        self.reports = reports

    async def handle(self, payload: Any) -> dict[str, Any] | None:
        request = parse_payload(ReportPayload, payload)

        if request.date_range.end < request.date_range.start:
            raise NonRetryableJobError("Report date range ends before it starts")

        metrics = await self.reports.generate(
            request.report_type, request.date_range.start, request.date_range.end
        )
        logger.info(
            "Report generated",
            extra={"report_type": request.report_type, "metrics": metrics},
        )
        return {"status": "completed", "report_type": request.report_type}


class ScrapingHandler:
    """Job handler shared by scheduled and immediate scraping jobs."""

    def __init__(self, scraper: JobScraper):
        self.scraper = scraper

    async def handle(self, payload: Any) -> dict[str, Any] | None:
        config = parse_payload(ScrapingPayload, payload)

        logger.info(
            "Starting scraping job",
            extra={"search_query": config.search_query, "location": config.location},
        )
        outcome = await self.scraper.scrape(config.model_dump())

        if not outcome.get("success"):
            errors = outcome.get("errors") or ["unknown error"]
            raise RuntimeError(f"Scraping failed: {', '.join(map(str, errors))}")

        return {
            "status": "completed",
            "jobs_scraped": outcome.get("jobs_scraped", 0),
            "errors": outcome.get("errors", []),
        }


class MaintenanceCleanupHandler:
    """
    Job handler for queue maintenance.

    Payload expected:
    {
        "tasks": ["cleanup_jobs", "release_expired_leases", "retry_failed"],
        "older_than_days": 30,       # optional, defaults to retention setting
        "retry_max_attempts": 5,     # optional, ceiling for retry_failed
        "dry_run": false             # optional
    }
    """

    TASKS = ("cleanup_jobs", "release_expired_leases", "retry_failed")

    def __init__(self, settings: Settings, database: Database):
        self.settings = settings
        self.database = database
        self.queue = QueueManager(settings)

    async def handle(self, payload: Any) -> dict[str, Any] | None:
        """Process maintenance tasks."""
        payload = payload or {}
        tasks = payload.get("tasks", ["cleanup_jobs", "release_expired_leases"])
        dry_run = payload.get("dry_run", False)

        unknown = [task for task in tasks if task not in self.TASKS]
        if unknown:
            raise NonRetryableJobError(f"Unknown maintenance tasks: {unknown}")

        results: dict[str, Any] = {}

        logger.info(
            "Starting maintenance tasks",
            extra={"tasks": tasks, "dry_run": dry_run},
        )

        if dry_run:
            for task in tasks:
                results[task] = {"status": "dry_run"}
        else:
            async with self.database.SessionLocal() as session:
                if "cleanup_jobs" in tasks:
                    older_than_days = payload.get(
                        "older_than_days", self.settings.job_cleanup_after_days
                    )
                    deleted = await self.queue.cleanup(
                        session, timedelta(days=older_than_days)
                    )
                    results["cleanup_jobs"] = {
                        "status": "completed",
                        "deleted_count": deleted,
                    }

                if "release_expired_leases" in tasks:
                    released = await self.queue.release_expired_leases(session)
                    results["release_expired_leases"] = {
                        "status": "completed",
                        "released_count": released,
                    }

                if "retry_failed" in tasks:
                    retried = await self.queue.retry_failed(
                        session, max_attempts=payload.get("retry_max_attempts", 5)
                    )
                    results["retry_failed"] = {
                        "status": "completed",
                        "retried_count": retried,
                    }

        logger.info(
            "Maintenance tasks completed",
            extra={"results": results, "dry_run": dry_run},
        )

        return {
            "status": "completed",
            "tasks_processed": tasks,
            "dry_run": dry_run,
            "results": results,
        }
