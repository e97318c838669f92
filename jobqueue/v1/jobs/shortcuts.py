"""
Enqueue helpers for the common job types.

Each helper fixes the job type, payload shape, priority and delay so callers
do not repeat them.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.v1.jobs.models import JobType
from jobqueue.v1.jobs.service import QueueManager


async def send_email(
    queue: QueueManager, session: AsyncSession, to: str, subject: str, html: str
) -> UUID:
    return await queue.enqueue(
        session,
        JobType.SEND_EMAIL.value,
        {"to": to, "subject": subject, "html": html},
        priority=1,
    )


async def create_backup(
    queue: QueueManager,
    session: AsyncSession,
    backup_type: Literal["manual", "scheduled"] = "manual",
    user_id: str | None = None,
) -> UUID:
    return await queue.enqueue(
        session,
        JobType.PROCESS_BACKUP.value,
        {"type": backup_type, "user_id": user_id},
        priority=2,
    )


async def cleanup_files(
    queue: QueueManager,
    session: AsyncSession,
    files: list[str],
    cleanup_type: Literal["temp", "orphaned", "old"] = "temp",
) -> UUID:
    """Delete files after a grace period of five minutes."""
    return await queue.enqueue(
        session,
        JobType.CLEANUP_FILES.value,
        {"files": files, "type": cleanup_type},
        priority=0,
        delay_seconds=300,
    )


async def generate_report(
    queue: QueueManager,
    session: AsyncSession,
    report_type: Literal["user_activity", "job_analytics", "system_health"],
    start: datetime,
    end: datetime,
) -> UUID:
    return await queue.enqueue(
        session,
        JobType.GENERATE_REPORT.value,
        {
            "report_type": report_type,
            "date_range": {"start": start.isoformat(), "end": end.isoformat()},
        },
        priority=1,
        delay_seconds=60,
    )


async def scrape_now(
    queue: QueueManager,
    session: AsyncSession,
    config: dict[str, Any],
    priority: int = 10,
) -> UUID:
    """Run a one-off scrape ahead of the scheduled ones."""
    return await queue.enqueue(
        session, JobType.IMMEDIATE_SCRAPING.value, dict(config), priority=priority
    )
