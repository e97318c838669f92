"""
Job queue API endpoints.

Provides admin endpoints for job enqueueing, monitoring, and maintenance.
"""

import logging
from datetime import timedelta
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.config.settings import Settings, SettingsDep
from jobqueue.infra.database import get_session
from jobqueue.v1.core.exceptions import NotFoundError, create_success_response
from jobqueue.v1.jobs.models import JobStatus
from jobqueue.v1.jobs.schemas import (
    CleanupRequest,
    JobActionResponse,
    JobEnqueueRequest,
    JobEnqueueResponse,
    JobListResponse,
    JobResponse,
    RetryFailedRequest,
)
from jobqueue.v1.jobs.service import QueueManager

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=dict)
async def enqueue_job(
    job_request: JobEnqueueRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Enqueue a new background job."""

    queue = QueueManager(settings)

    try:
        job_id = await queue.enqueue(
            session,
            job_request.type,
            job_request.payload,
            priority=job_request.priority,
            delay_seconds=job_request.delay_seconds,
            max_attempts=job_request.max_attempts,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(
        "Job enqueued via API",
        extra={"job_id": str(job_id), "type": job_request.type},
    )

    return create_success_response(
        data=JobEnqueueResponse(job_id=job_id).model_dump(mode="json")
    )


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(
        default=None, description="Filter by status"
    ),
    type: str | None = Query(default=None, description="Filter by job type"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """List jobs with filtering and pagination."""

    queue = QueueManager(settings)
    jobs, total = await queue.list_jobs(
        session, status=status, job_type=type, limit=limit, offset=offset
    )

    response_data = JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )

    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/stats/overview", response_model=dict)
async def get_job_stats(
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get queue statistics."""

    queue = QueueManager(settings)
    stats = await queue.stats(session)

    return create_success_response(data=stats.model_dump(mode="json"))


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get a specific job by ID."""

    queue = QueueManager(settings)
    job = await queue.get_job(session, job_id)

    if not job:
        raise NotFoundError("Job not found", {"job_id": str(job_id)})

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )


@router.post("/{job_id}/retry", response_model=dict)
async def retry_job(
    job_id: UUID,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Reset a failed job to pending."""

    queue = QueueManager(settings)
    success = await queue.retry_job(session, job_id)

    if not success:
        raise NotFoundError(
            "Job not found or not eligible for retry", {"job_id": str(job_id)}
        )

    logger.info("Job retried via API", extra={"job_id": str(job_id)})

    return create_success_response(data={"success": True, "job_id": str(job_id)})


@router.post("/retry-failed", response_model=dict)
async def retry_failed_jobs(
    request: RetryFailedRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Reset terminal failures below the given attempt ceiling."""

    queue = QueueManager(settings)
    retried = await queue.retry_failed(
        session, max_attempts=request.max_attempts, limit=request.limit
    )

    logger.info(
        "Failed jobs retried via API",
        extra={"retried_count": retried, "max_attempts": request.max_attempts},
    )

    return create_success_response(
        data=JobActionResponse(affected=retried).model_dump()
    )


@router.post("/cleanup", response_model=dict)
async def cleanup_jobs(
    request: CleanupRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Delete completed jobs older than the retention window."""

    queue = QueueManager(settings)
    deleted = await queue.cleanup(
        session, older_than=timedelta(days=request.older_than_days)
    )

    logger.info(
        "Completed jobs cleaned up via API",
        extra={"deleted_count": deleted, "older_than_days": request.older_than_days},
    )

    return create_success_response(
        data=JobActionResponse(affected=deleted).model_dump()
    )
