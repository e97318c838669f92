from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.config.logging import get_logger
from jobqueue.config.settings import Settings, SettingsDep
from jobqueue.infra.database import get_session
from jobqueue.v1.core.exceptions import create_success_response
from jobqueue.v1.jobs.models import Job, JobStatus

logger = get_logger(__name__)
router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class WorkerHealth(BaseModel):
    """Worker health status derived from job leases."""

    active_workers: int
    last_heartbeat_age_seconds: int | None = None
    stuck_jobs_count: int = 0
    queue_depth: int = 0
    oldest_pending_age_seconds: int | None = None


class HealthResponse(BaseModel):
    """Health response with worker and database status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    database: DatabaseHealth
    worker: WorkerHealth | None = None


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, session: AsyncSession = Depends(get_session)
):
    """Health check endpoint with database and worker status."""

    db_health = await _check_database_health(session)

    # Worker health never fails the overall check
    worker_health = None
    if db_health.connected:
        try:
            worker_health = await _check_worker_health(session, settings)
        except Exception:
            logger.exception("Worker health check failed")

    health = HealthResponse(
        ok=db_health.connected,
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.now(UTC).isoformat(),
        database=db_health,
        worker=worker_health,
    )

    return create_success_response(data=health.model_dump())


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        await session.execute(text("SELECT 1"))
        await session.commit()

        response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        await session.rollback()
        return DatabaseHealth(connected=False, error=str(e))


async def _check_worker_health(
    session: AsyncSession, settings: Settings
) -> WorkerHealth:
    """Check job worker health and queue status."""
    now = datetime.now(UTC)
    processing = Job.status == JobStatus.PROCESSING.value

    # Workers that heartbeated within the last few intervals
    heartbeat_cutoff = now - timedelta(seconds=settings.job_heartbeat_interval_s * 3)
    active_workers = await session.scalar(
        select(func.count(func.distinct(Job.locked_by))).where(
            processing, Job.heartbeat_at > heartbeat_cutoff
        )
    )

    last_heartbeat = await session.scalar(
        select(func.max(Job.heartbeat_at)).where(processing)
    )

    # Processing jobs whose lease has already expired
    stuck_cutoff = now - timedelta(seconds=settings.job_visibility_timeout_s)
    stuck_jobs_count = await session.scalar(
        select(func.count(Job.id)).where(
            processing, func.coalesce(Job.heartbeat_at, Job.locked_at) < stuck_cutoff
        )
    )

    queue_depth = await session.scalar(
        select(func.count(Job.id)).where(
            Job.status.in_([JobStatus.PENDING.value, JobStatus.PROCESSING.value])
        )
    )

    oldest_pending = await session.scalar(
        select(func.min(Job.scheduled_for)).where(
            Job.status == JobStatus.PENDING.value, Job.scheduled_for <= now
        )
    )
    await session.commit()

    return WorkerHealth(
        active_workers=active_workers or 0,
        last_heartbeat_age_seconds=(
            int((now - last_heartbeat).total_seconds()) if last_heartbeat else None
        ),
        stuck_jobs_count=stuck_jobs_count or 0,
        queue_depth=queue_depth or 0,
        oldest_pending_age_seconds=(
            int((now - oldest_pending).total_seconds()) if oldest_pending else None
        ),
    )
