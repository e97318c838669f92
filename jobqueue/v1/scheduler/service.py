"""
Recurring job scheduler.

Turns time-based definitions into ordinary queue jobs. The scheduler never
runs handlers itself; it only enqueues through the QueueManager, so the
worker loop is the single place jobs execute.
"""

import asyncio
import copy
import uuid
from collections.abc import Collection
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from jobqueue.config.logging import get_logger
from jobqueue.config.settings import Settings
from jobqueue.infra.database import Database
from jobqueue.v1.core.exceptions import ValidationError
from jobqueue.v1.jobs.service import QueueManager
from jobqueue.v1.scheduler.cron import next_run_after
from jobqueue.v1.scheduler.defaults import DEFAULT_SCHEDULES
from jobqueue.v1.scheduler.repository import (
    ScheduleRepository,
    SqlScheduleRepository,
    touch,
)
from jobqueue.v1.scheduler.schemas import (
    ScheduledJobDefinition,
    SchedulerStatsResponse,
    UpcomingRun,
)

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"name", "type", "schedule_expression", "config", "priority", "is_active"}
)


class JobScheduler:
    """
    Enqueues jobs for recurring definitions whose next run has passed.

    Overdue definitions fire once per tick; missed intervals are not
    backfilled.
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        repository: ScheduleRepository | None = None,
        queue: QueueManager | None = None,
        job_types: Collection[str] | None = None,
    ):
        self.settings = settings
        self.database = database
        self.repository = repository or SqlScheduleRepository(database)
        self.queue = queue or QueueManager(settings)
        # Job types with a registered handler; None means no filtering
        self.job_types = set(job_types) if job_types is not None else None
        self.running = False

        self._wakeup = asyncio.Event()
        self._stopped = asyncio.Event()
        self._started = False

    def _next_run(self, expression: str, now: datetime) -> datetime:
        return next_run_after(expression, now, self.settings.scheduler_timezone)

    async def start(self) -> None:
        """Seed defaults and run the tick loop until stop() is called."""
        if self.running:
            raise RuntimeError("Scheduler is already running")

        self.running = True
        self._started = True
        self._wakeup.clear()
        self._stopped.clear()

        logger.info(
            "Starting job scheduler",
            tick_interval_s=self.settings.scheduler_tick_interval_s,
            timezone=self.settings.scheduler_timezone,
        )

        try:
            if self.settings.scheduler_load_defaults:
                await self.load_default_schedules()

            while self.running:
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Scheduler tick failed")

                if self.running:
                    try:
                        await asyncio.wait_for(
                            self._wakeup.wait(),
                            timeout=self.settings.scheduler_tick_interval_s,
                        )
                    except asyncio.TimeoutError:
                        pass
        finally:
            self.running = False
            self._stopped.set()
            logger.info("Job scheduler stopped")

    async def stop(self) -> None:
        """Stop the scheduler after the current tick."""
        if not self._started:
            return

        logger.info("Stopping job scheduler")
        self.running = False
        self._wakeup.set()
        await self._stopped.wait()

    async def load_default_schedules(self) -> int:
        """Create the built-in definitions that do not exist yet.

        When the scheduler knows the registered job types, defaults whose
        type has no handler are skipped.
        """
        existing = {definition.name for definition in await self.repository.list()}
        created = 0
        skipped: list[str] = []

        for default in DEFAULT_SCHEDULES:
            if default["name"] in existing:
                continue
            if self.job_types is not None and default["job_type"] not in self.job_types:
                skipped.append(default["name"])
                continue
            await self.schedule_job(**copy.deepcopy(default))
            created += 1

        if skipped:
            logger.warning("Default schedules without a handler skipped", names=skipped)
        logger.info("Default schedules loaded", created=created)
        return created

    async def schedule_job(
        self,
        name: str,
        job_type: str,
        schedule_expression: str,
        config: dict[str, Any] | None = None,
        priority: int = 5,
        is_active: bool = True,
    ) -> str:
        """
        Create a recurring definition.

        Raises:
            CronExpressionError: if the expression is outside the supported subset
        """
        now = datetime.now(UTC)
        next_run = self._next_run(schedule_expression, now)

        definition = ScheduledJobDefinition(
            id=str(uuid.uuid4()),
            name=name,
            type=job_type,
            schedule_expression=schedule_expression,
            config=copy.deepcopy(config or {}),
            priority=priority,
            is_active=is_active,
            next_run=next_run,
            created_at=now,
            updated_at=now,
        )
        await self.repository.put(definition)

        logger.info(
            "Job scheduled",
            schedule_id=definition.id,
            name=name,
            job_type=job_type,
            expression=schedule_expression,
            next_run=next_run.isoformat(),
        )
        return definition.id

    async def unschedule_job(self, schedule_id: str) -> bool:
        """Remove a definition. Removing an unknown id is a no-op."""
        removed = await self.repository.delete(schedule_id)
        if removed:
            logger.info("Job unscheduled", schedule_id=schedule_id)
        return removed

    async def get_scheduled_jobs(self) -> list[ScheduledJobDefinition]:
        return await self.repository.list()

    async def get_scheduled_job(self, schedule_id: str) -> ScheduledJobDefinition | None:
        return await self.repository.get(schedule_id)

    async def update_scheduled_job(
        self, schedule_id: str, **changes: Any
    ) -> ScheduledJobDefinition | None:
        """
        Apply a partial update.

        ``next_run`` is recomputed when the expression changes or an inactive
        definition is re-activated. Returns None for unknown ids.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Unsupported schedule fields", {"fields": sorted(unknown)}
            )

        definition = await self.repository.get(schedule_id)
        if definition is None:
            return None

        changes = {k: v for k, v in changes.items() if v is not None}
        expression = changes.get("schedule_expression", definition.schedule_expression)
        reactivated = changes.get("is_active") is True and not definition.is_active

        if expression != definition.schedule_expression or reactivated:
            changes["next_run"] = self._next_run(expression, datetime.now(UTC))
        if "config" in changes:
            changes["config"] = copy.deepcopy(changes["config"])

        updated = touch(definition, **changes)
        await self.repository.put(updated)

        logger.info(
            "Scheduled job updated",
            schedule_id=schedule_id,
            fields=sorted(changes),
        )
        return updated

    async def tick(self, now: datetime | None = None) -> int:
        """
        Enqueue one job for every active definition that is due.

        Returns the number of jobs enqueued. A storage error abandons the
        tick; any other error only skips the offending definition.
        """
        now = now or datetime.now(UTC)
        fired = 0

        for definition in await self.repository.list():
            if not definition.is_active:
                continue

            try:
                if definition.next_run is None:
                    await self.repository.put(
                        touch(
                            definition,
                            next_run=self._next_run(definition.schedule_expression, now),
                        )
                    )
                    continue

                if definition.next_run > now:
                    continue

                await self._fire(definition, now)
                fired += 1
            except SQLAlchemyError:
                raise
            except Exception:
                logger.exception(
                    "Failed to run scheduled job",
                    schedule_id=definition.id,
                    name=definition.name,
                )

        if fired:
            logger.info("Scheduler tick enqueued jobs", fired=fired)
        return fired

    async def _fire(self, definition: ScheduledJobDefinition, now: datetime) -> None:
        next_run = self._next_run(definition.schedule_expression, now)

        async with self.database.SessionLocal() as session:
            job_id = await self.queue.enqueue(
                session,
                definition.type,
                copy.deepcopy(definition.config),
                priority=definition.priority,
            )

        await self.repository.put(touch(definition, last_run=now, next_run=next_run))

        logger.info(
            "Scheduled job enqueued",
            schedule_id=definition.id,
            name=definition.name,
            job_id=str(job_id),
            next_run=next_run.isoformat(),
        )

    async def get_stats(self) -> SchedulerStatsResponse:
        """Running flag, definition totals and the next five runs."""
        definitions = await self.repository.list()
        active = [d for d in definitions if d.is_active]
        upcoming = sorted(
            (d for d in active if d.next_run is not None), key=lambda d: d.next_run
        )

        return SchedulerStatsResponse(
            is_running=self.running,
            total_scheduled_jobs=len(definitions),
            active_jobs=len(active),
            next_runs=[
                UpcomingRun(id=d.id, name=d.name, next_run=d.next_run)
                for d in upcoming[:5]
            ],
        )
