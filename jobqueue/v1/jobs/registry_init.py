"""
Job registry initialization.

Registers the built-in maintenance handler, the catalogue handlers whose
collaborators the host application supplies, and any handler modules named
in settings.
"""

import importlib
import logging
from dataclasses import dataclass

from jobqueue.config.settings import Settings
from jobqueue.infra.database import Database
from jobqueue.v1.core.registries import JobRegistry, job_registry
from jobqueue.v1.jobs.handlers import (
    BackupService,
    CleanupFilesHandler,
    EmailSender,
    FileStore,
    GenerateReportHandler,
    JobScraper,
    MaintenanceCleanupHandler,
    ProcessBackupHandler,
    ReportGenerator,
    ScrapingHandler,
    SendEmailHandler,
)
from jobqueue.v1.jobs.models import JobType

logger = logging.getLogger(__name__)


@dataclass
class Collaborators:
    """External services the catalogue handlers delegate to."""

    email_sender: EmailSender | None = None
    backups: BackupService | None = None
    file_store: FileStore | None = None
    reports: ReportGenerator | None = None
    scraper: JobScraper | None = None


def register_job_handlers(
    settings: Settings,
    database: Database,
    collaborators: Collaborators | None = None,
    registry: JobRegistry = job_registry,
) -> list[str]:
    """Register job handlers and return the registered job types.

    Job types without a collaborator stay unregistered; the worker fails
    such jobs permanently as unknown types.
    """
    collaborators = collaborators or Collaborators()

    logger.info("Registering job handlers")

    # Maintenance job handlers
    registry.register(
        JobType.MAINTENANCE_CLEANUP.value,
        MaintenanceCleanupHandler(settings, database),
    )

    if collaborators.email_sender is not None:
        registry.register(
            JobType.SEND_EMAIL.value, SendEmailHandler(collaborators.email_sender)
        )

    if collaborators.backups is not None:
        registry.register(
            JobType.PROCESS_BACKUP.value, ProcessBackupHandler(collaborators.backups)
        )

    if collaborators.file_store is not None:
        registry.register(
            JobType.CLEANUP_FILES.value, CleanupFilesHandler(collaborators.file_store)
        )

    if collaborators.reports is not None:
        registry.register(
            JobType.GENERATE_REPORT.value, GenerateReportHandler(collaborators.reports)
        )

    if collaborators.scraper is not None:
        scraping = ScrapingHandler(collaborators.scraper)
        registry.register(JobType.SCHEDULED_SCRAPING.value, scraping)
        registry.register(JobType.IMMEDIATE_SCRAPING.value, scraping)

    # Handler modules register themselves when imported
    for module_name in settings.job_handler_modules:
        importlib.import_module(module_name)

    logger.info(
        "Job handlers registered", extra={"registered_handlers": registry.list()}
    )
    return registry.list()
