"""
Queue manager: the only component that mutates job records.
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.config.settings import Settings
from jobqueue.v1.jobs.models import Job, JobStatus
from jobqueue.v1.jobs.schemas import JobStatsResponse

logger = logging.getLogger(__name__)

LEASE_EXPIRED_ERROR = "Worker lease expired"


def _owned(job_id: UUID, worker_id: str | None) -> list[Any]:
    """Match a processing job, and its lease holder when one is named."""
    conditions = [Job.id == job_id, Job.status == JobStatus.PROCESSING.value]
    if worker_id is not None:
        conditions.append(Job.locked_by == worker_id)
    return conditions


def _settleable(job_id: UUID, worker_id: str | None) -> list[Any]:
    """Match a job that may still be settled.

    Without a worker, pending jobs qualify too (administrative settlement).
    """
    if worker_id is not None:
        return _owned(job_id, worker_id)
    return [
        Job.id == job_id,
        Job.status.in_([JobStatus.PROCESSING.value, JobStatus.PENDING.value]),
    ]


class QueueManager:
    """Service for enqueueing, claiming and settling background jobs."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def enqueue(
        self,
        session: AsyncSession,
        job_type: str,
        payload: Any,
        priority: int = 0,
        delay_seconds: float = 0,
        max_attempts: int | None = None,
    ) -> UUID:
        """
        Enqueue a new pending job.

        Args:
            session: Database session
            job_type: Handler discriminator
            payload: Opaque JSON-serializable handler input
            priority: Higher values are claimed first
            delay_seconds: Seconds until the job becomes claimable
            max_attempts: Attempt ceiling, defaults to the configured value

        Returns:
            The new job id
        """
        if delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")

        if max_attempts is None:
            max_attempts = self.settings.job_max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        now = datetime.now(UTC)
        job = Job(
            id=uuid.uuid4(),
            type=job_type,
            payload=payload,
            priority=priority,
            status=JobStatus.PENDING.value,
            attempts=0,
            max_attempts=max_attempts,
            scheduled_for=now + timedelta(seconds=delay_seconds),
            created_at=now,
            updated_at=now,
        )

        try:
            session.add(job)
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            logger.exception(
                "Failed to enqueue job",
                extra={"type": job_type, "priority": priority},
            )
            raise

        logger.info(
            "Job enqueued",
            extra={
                "job_id": str(job.id),
                "type": job_type,
                "priority": priority,
                "scheduled_for": job.scheduled_for.isoformat(),
            },
        )
        return job.id

    async def claim_next(
        self,
        session: AsyncSession,
        worker_id: str | None = None,
        now: datetime | None = None,
    ) -> Job | None:
        """
        Atomically claim the most urgent eligible job.

        Selection and the pending -> processing transition happen in one
        conditional UPDATE, so concurrent callers never receive the same row.
        On PostgreSQL the candidate is picked with FOR UPDATE SKIP LOCKED so
        competing workers move on to the next row instead of waiting.
        """
        now = now or datetime.now(UTC)

        candidate = (
            select(Job.id)
            .where(Job.status == JobStatus.PENDING.value, Job.scheduled_for <= now)
            .order_by(
                Job.priority.desc(), Job.scheduled_for.asc(), Job.created_at.asc()
            )
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )

        claim_query = (
            update(Job)
            .where(Job.id == candidate, Job.status == JobStatus.PENDING.value)
            .values(
                status=JobStatus.PROCESSING.value,
                attempts=Job.attempts + 1,
                locked_by=worker_id,
                locked_at=now,
                heartbeat_at=now,
                updated_at=now,
            )
            .returning(Job)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        try:
            result = await session.execute(claim_query)
            job = result.scalars().first()
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise

        if job is not None:
            logger.info(
                "Claimed job",
                extra={
                    "job_id": str(job.id),
                    "type": job.type,
                    "attempt": job.attempts,
                    "max_attempts": job.max_attempts,
                    "worker_id": worker_id,
                },
            )

        return job

    async def complete(
        self,
        session: AsyncSession,
        job_id: UUID,
        result: dict[str, Any] | None = None,
        worker_id: str | None = None,
    ) -> bool:
        """Mark a job completed. Repeating the call is a no-op.

        With ``worker_id`` the job is only settled while that worker holds
        its lease.
        """
        now = datetime.now(UTC)
        values: dict[str, Any] = {
            "status": JobStatus.COMPLETED.value,
            "error": None,
            "locked_by": None,
            "locked_at": None,
            "heartbeat_at": None,
            "updated_at": now,
        }
        if result is not None:
            values["result"] = result

        outcome = await session.execute(
            update(Job)
            .where(*_settleable(job_id, worker_id))
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if outcome.rowcount > 0:
            await session.commit()
            logger.info("Job completed", extra={"job_id": str(job_id)})
            return True

        current = await session.scalar(select(Job.status).where(Job.id == job_id))
        await session.commit()

        if current == JobStatus.COMPLETED.value:
            return True

        logger.warning(
            "Job could not be completed",
            extra={"job_id": str(job_id), "status": current},
        )
        return False

    async def fail_retryable(
        self,
        session: AsyncSession,
        job_id: UUID,
        error: str,
        retry_delay_seconds: float | None = None,
        worker_id: str | None = None,
    ) -> JobStatus | None:
        """
        Record a failed attempt.

        Jobs with attempts left go back to pending, eligible again after
        ``retry_delay_seconds``; exhausted jobs become terminally failed. With
        ``worker_id`` only a lease held by that worker is settled.

        Returns:
            The resulting status, or None if the job was not processing
        """
        now = datetime.now(UTC)
        run_again_at = now + timedelta(seconds=retry_delay_seconds or 0)
        release = {
            "locked_by": None,
            "locked_at": None,
            "heartbeat_at": None,
            "updated_at": now,
        }

        retried = await session.execute(
            update(Job)
            .where(*_owned(job_id, worker_id), Job.attempts < Job.max_attempts)
            .values(
                status=JobStatus.PENDING.value,
                error=error,
                scheduled_for=run_again_at,
                **release,
            )
            .execution_options(synchronize_session=False)
        )
        if retried.rowcount > 0:
            await session.commit()
            logger.info(
                "Job scheduled for retry",
                extra={
                    "job_id": str(job_id),
                    "error": error,
                    "next_run_at": run_again_at.isoformat(),
                },
            )
            return JobStatus.PENDING

        exhausted = await session.execute(
            update(Job)
            .where(*_owned(job_id, worker_id))
            .values(status=JobStatus.FAILED.value, error=error, **release)
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        if exhausted.rowcount > 0:
            logger.error(
                "Job failed permanently after exhausting attempts",
                extra={"job_id": str(job_id), "error": error},
            )
            return JobStatus.FAILED

        logger.warning(
            "Failure reported for job that is not processing",
            extra={"job_id": str(job_id)},
        )
        return None

    async def fail_permanently(
        self,
        session: AsyncSession,
        job_id: UUID,
        error: str,
        worker_id: str | None = None,
    ) -> bool:
        """Move a job straight to terminal failed, regardless of attempts."""
        outcome = await session.execute(
            update(Job)
            .where(*_settleable(job_id, worker_id))
            .values(
                status=JobStatus.FAILED.value,
                error=error,
                locked_by=None,
                locked_at=None,
                heartbeat_at=None,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        success = outcome.rowcount > 0
        if success:
            logger.error(
                "Job failed permanently",
                extra={"job_id": str(job_id), "error": error},
            )
        return success

    async def get_job(self, session: AsyncSession, job_id: UUID) -> Job | None:
        """Get job by ID."""
        result = await session.execute(select(Job).where(Job.id == job_id))
        return result.scalar_one_or_none()

    async def list_jobs(
        self,
        session: AsyncSession,
        status: list[JobStatus] | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """List jobs newest first, with the unpaginated total."""
        base_query = select(Job)
        if status:
            base_query = base_query.where(Job.status.in_([s.value for s in status]))
        if job_type:
            base_query = base_query.where(Job.type == job_type)

        total = await session.scalar(
            select(func.count()).select_from(base_query.subquery())
        )

        jobs_result = await session.execute(
            base_query.order_by(Job.created_at.desc()).offset(offset).limit(limit)
        )
        return list(jobs_result.scalars().all()), total or 0

    async def stats(self, session: AsyncSession) -> JobStatsResponse:
        """Get queue statistics. Read only."""
        status_result = await session.execute(
            select(Job.status, func.count(Job.id)).group_by(Job.status)
        )
        by_status = dict(status_result.all())

        type_result = await session.execute(
            select(Job.type, func.count(Job.id)).group_by(Job.type)
        )
        by_type = dict(type_result.all())

        oldest_pending = await session.scalar(
            select(func.min(Job.scheduled_for)).where(
                Job.status == JobStatus.PENDING.value
            )
        )

        one_hour_ago = datetime.now(UTC) - timedelta(hours=1)
        failed_last_hour = await session.scalar(
            select(func.count(Job.id)).where(
                Job.status == JobStatus.FAILED.value,
                Job.updated_at >= one_hour_ago,
            )
        )

        pending = by_status.get(JobStatus.PENDING.value, 0)
        processing = by_status.get(JobStatus.PROCESSING.value, 0)

        return JobStatsResponse(
            pending=pending,
            processing=processing,
            completed=by_status.get(JobStatus.COMPLETED.value, 0),
            failed=by_status.get(JobStatus.FAILED.value, 0),
            oldest_pending_scheduled_for=oldest_pending,
            total=sum(by_status.values()),
            by_type=by_type,
            queue_depth=pending + processing,
            failed_last_hour=failed_last_hour or 0,
        )

    async def cleanup(
        self, session: AsyncSession, older_than: timedelta | None = None
    ) -> int:
        """Delete completed jobs past the retention window.

        Failed jobs are never deleted; they stay for inspection and retry.
        """
        if older_than is None:
            older_than = timedelta(days=self.settings.job_cleanup_after_days)
        cutoff = datetime.now(UTC) - older_than

        result = await session.execute(
            delete(Job)
            .where(
                Job.status == JobStatus.COMPLETED.value,
                Job.updated_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        deleted_count = result.rowcount
        await session.commit()

        if deleted_count > 0:
            logger.info(
                "Cleaned up old jobs",
                extra={
                    "deleted_count": deleted_count,
                    "cutoff": cutoff.isoformat(),
                },
            )

        return deleted_count

    async def retry_failed(
        self, session: AsyncSession, max_attempts: int = 5, limit: int = 50
    ) -> int:
        """
        Reset terminal failures below a raised attempt ceiling to pending.

        Each reset job's ceiling is lifted to ``max_attempts`` so it gets
        automatic retries again.
        """
        failed_ids = (
            await session.execute(
                select(Job.id)
                .where(
                    Job.status == JobStatus.FAILED.value,
                    Job.attempts < max_attempts,
                )
                .order_by(Job.updated_at.asc())
                .limit(limit)
            )
        ).scalars().all()

        if not failed_ids:
            await session.commit()
            return 0

        now = datetime.now(UTC)
        result = await session.execute(
            update(Job)
            .where(Job.id.in_(failed_ids), Job.status == JobStatus.FAILED.value)
            .values(
                status=JobStatus.PENDING.value,
                error=None,
                max_attempts=case(
                    (Job.max_attempts < max_attempts, max_attempts),
                    else_=Job.max_attempts,
                ),
                scheduled_for=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        retried_count = result.rowcount
        await session.commit()

        logger.info(
            "Retried failed jobs",
            extra={"retried_count": retried_count, "max_attempts": max_attempts},
        )
        return retried_count

    async def retry_job(self, session: AsyncSession, job_id: UUID) -> bool:
        """Reset one failed job to pending, granting one more attempt if needed."""
        now = datetime.now(UTC)
        result = await session.execute(
            update(Job)
            .where(Job.id == job_id, Job.status == JobStatus.FAILED.value)
            .values(
                status=JobStatus.PENDING.value,
                error=None,
                max_attempts=case(
                    (Job.attempts >= Job.max_attempts, Job.attempts + 1),
                    else_=Job.max_attempts,
                ),
                scheduled_for=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        success = result.rowcount > 0
        if success:
            logger.info("Job retried", extra={"job_id": str(job_id)})
        return success

    async def heartbeat(
        self, session: AsyncSession, job_ids: list[UUID], worker_id: str
    ) -> int:
        """Refresh the lease of jobs still held by this worker."""
        if not job_ids:
            return 0

        result = await session.execute(
            update(Job)
            .where(
                Job.id.in_(job_ids),
                Job.locked_by == worker_id,
                Job.status == JobStatus.PROCESSING.value,
            )
            .values(heartbeat_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        return result.rowcount

    async def release_expired_leases(
        self,
        session: AsyncSession,
        lease_seconds: int | None = None,
        now: datetime | None = None,
    ) -> int:
        """
        Reclaim processing jobs whose worker stopped heartbeating.

        Jobs with attempts left return to pending; exhausted ones fail.
        """
        if lease_seconds is None:
            lease_seconds = self.settings.job_visibility_timeout_s
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(seconds=lease_seconds)

        expired = (
            Job.status == JobStatus.PROCESSING.value,
            func.coalesce(Job.heartbeat_at, Job.locked_at) < cutoff,
        )
        release = {
            "locked_by": None,
            "locked_at": None,
            "heartbeat_at": None,
            "updated_at": now,
        }

        requeued = await session.execute(
            update(Job)
            .where(*expired, Job.attempts < Job.max_attempts)
            .values(
                status=JobStatus.PENDING.value,
                error=LEASE_EXPIRED_ERROR,
                scheduled_for=now,
                **release,
            )
            .execution_options(synchronize_session=False)
        )
        exhausted = await session.execute(
            update(Job)
            .where(*expired, Job.attempts >= Job.max_attempts)
            .values(
                status=JobStatus.FAILED.value,
                error=LEASE_EXPIRED_ERROR,
                **release,
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        released = requeued.rowcount + exhausted.rowcount
        if released > 0:
            logger.warning(
                "Released expired job leases",
                extra={
                    "requeued": requeued.rowcount,
                    "failed": exhausted.rowcount,
                    "lease_seconds": lease_seconds,
                },
            )
        return released
