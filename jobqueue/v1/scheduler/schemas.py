"""
Recurring scheduler Pydantic schemas.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ScheduledJobDefinition(BaseModel):
    """A recurring job definition as held by a schedule repository."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    schedule_expression: str
    config: dict[str, Any] = Field(default_factory=dict)
    priority: int = 5
    is_active: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ScheduleCreateRequest(BaseModel):
    """Schema for creating a recurring definition via API."""

    name: str = Field(..., min_length=1, max_length=200)
    type: str = Field(..., min_length=1, description="Job type to enqueue")
    schedule_expression: str = Field(
        ..., description="minute hour day-of-month month day-of-week"
    )
    config: dict[str, Any] = Field(
        default_factory=dict, description="Payload template for produced jobs"
    )
    priority: int = Field(default=5, description="Priority of produced jobs")
    is_active: bool = True


class ScheduleUpdateRequest(BaseModel):
    """Schema for partial updates; omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    type: str | None = Field(default=None, min_length=1)
    schedule_expression: str | None = None
    config: dict[str, Any] | None = None
    priority: int | None = None
    is_active: bool | None = None


class ScheduleCreateResponse(BaseModel):
    """Schema for schedule creation response."""

    schedule_id: str
    next_run: datetime | None = None


class UpcomingRun(BaseModel):
    id: str
    name: str
    next_run: datetime


class SchedulerStatsResponse(BaseModel):
    """Schema for scheduler statistics."""

    is_running: bool = False
    total_scheduled_jobs: int = 0
    active_jobs: int = 0
    next_runs: list[UpcomingRun] = Field(default_factory=list)
