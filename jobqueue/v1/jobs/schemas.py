"""
Job queue Pydantic schemas.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from jobqueue.v1.jobs.models import JobStatus


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    payload: Any
    status: str
    priority: int
    attempts: int
    max_attempts: int
    scheduled_for: datetime
    error: str | None = None
    result: dict[str, Any] | None = None

    # Worker lease
    locked_by: str | None = None
    locked_at: datetime | None = None
    heartbeat_at: datetime | None = None

    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class JobStatsResponse(BaseModel):
    """Schema for queue statistics."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    oldest_pending_scheduled_for: datetime | None = None
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    queue_depth: int = 0  # pending + processing
    failed_last_hour: int = 0


# Upper bounds keep timedelta arithmetic in range
MAX_DELAY_SECONDS = 365 * 24 * 3600
MAX_RETENTION_DAYS = 3650


class JobEnqueueRequest(BaseModel):
    """Schema for enqueueing jobs via API."""

    type: str = Field(..., min_length=1, description="Job type")
    payload: Any = Field(default_factory=dict, description="Job payload")
    priority: int = Field(default=0, description="Higher is claimed first")
    delay_seconds: float = Field(
        default=0,
        ge=0,
        le=MAX_DELAY_SECONDS,
        description="Seconds before the job becomes claimable",
    )
    max_attempts: int | None = Field(
        default=None, ge=1, description="Attempt ceiling, defaults to server setting"
    )


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue response."""

    job_id: UUID
    status: str = JobStatus.PENDING.value


class RetryFailedRequest(BaseModel):
    """Schema for bulk retry of terminal failures."""

    max_attempts: int = Field(
        default=5, ge=1, description="Raised attempt ceiling for retried jobs"
    )
    limit: int = Field(default=50, ge=1, le=1000, description="Maximum jobs to reset")


class CleanupRequest(BaseModel):
    """Schema for completed-job retention cleanup."""

    older_than_days: float = Field(
        default=30,
        gt=0,
        le=MAX_RETENTION_DAYS,
        description="Delete completed jobs older than this",
    )


class JobActionResponse(BaseModel):
    """Schema for bulk maintenance action responses."""

    affected: int
