"""
Recurring schedule API endpoints.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from jobqueue.config.settings import Settings, SettingsDep
from jobqueue.infra.database import Database, get_database
from jobqueue.v1.core.exceptions import NotFoundError, create_success_response
from jobqueue.v1.scheduler.schemas import (
    ScheduleCreateRequest,
    ScheduleCreateResponse,
    ScheduleUpdateRequest,
)
from jobqueue.v1.scheduler.service import JobScheduler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/schedules", tags=["schedules"])


def get_scheduler(
    settings: Settings = SettingsDep,
    database: Database = Depends(get_database),
) -> JobScheduler:
    """Scheduler bound to the durable repository (the loop runs elsewhere)."""
    return JobScheduler(settings, database)


@router.get("", response_model=dict)
async def list_schedules(
    scheduler: JobScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    """List all recurring definitions."""

    definitions = await scheduler.get_scheduled_jobs()

    return create_success_response(
        data={
            "schedules": [d.model_dump(mode="json") for d in definitions],
            "total": len(definitions),
        }
    )


@router.post("", response_model=dict)
async def create_schedule(
    request: ScheduleCreateRequest,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    """Create a recurring definition."""

    schedule_id = await scheduler.schedule_job(
        name=request.name,
        job_type=request.type,
        schedule_expression=request.schedule_expression,
        config=request.config,
        priority=request.priority,
        is_active=request.is_active,
    )
    definition = await scheduler.get_scheduled_job(schedule_id)

    logger.info(
        "Schedule created via API",
        extra={"schedule_id": schedule_id, "type": request.type},
    )

    response = ScheduleCreateResponse(
        schedule_id=schedule_id,
        next_run=definition.next_run if definition else None,
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("/stats/overview", response_model=dict)
async def get_schedule_stats(
    scheduler: JobScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    """Get definition totals and the next upcoming runs."""

    stats = await scheduler.get_stats()

    return create_success_response(data=stats.model_dump(mode="json"))


@router.get("/{schedule_id}", response_model=dict)
async def get_schedule(
    schedule_id: str,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    """Get a specific recurring definition."""

    definition = await scheduler.get_scheduled_job(schedule_id)
    if not definition:
        raise NotFoundError("Schedule not found", {"schedule_id": schedule_id})

    return create_success_response(data=definition.model_dump(mode="json"))


@router.patch("/{schedule_id}", response_model=dict)
async def update_schedule(
    schedule_id: str,
    request: ScheduleUpdateRequest,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    """Update, pause or resume a recurring definition."""

    definition = await scheduler.update_scheduled_job(
        schedule_id, **request.model_dump(exclude_unset=True)
    )
    if not definition:
        raise NotFoundError("Schedule not found", {"schedule_id": schedule_id})

    logger.info("Schedule updated via API", extra={"schedule_id": schedule_id})

    return create_success_response(data=definition.model_dump(mode="json"))


@router.delete("/{schedule_id}", response_model=dict)
async def delete_schedule(
    schedule_id: str,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    """Remove a recurring definition. Unknown ids are not an error."""

    removed = await scheduler.unschedule_job(schedule_id)

    logger.info(
        "Schedule removed via API",
        extra={"schedule_id": schedule_id, "removed": removed},
    )

    return create_success_response(data={"removed": removed, "schedule_id": schedule_id})
