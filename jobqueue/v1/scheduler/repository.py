"""
Storage for recurring job definitions.

The scheduler only talks to the ScheduleRepository protocol. The SQL
implementation keeps definitions in the same database as the job queue so
they survive restarts; the in-memory one suits tests and embedded use.
"""

import copy
import logging
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from jobqueue.infra.database import Database
from jobqueue.v1.scheduler.models import ScheduledJob
from jobqueue.v1.scheduler.schemas import ScheduledJobDefinition

logger = logging.getLogger(__name__)


class ScheduleRepository(Protocol):
    """Protocol for recurring definition storage."""

    async def list(self) -> list[ScheduledJobDefinition]:
        """All definitions, active or not, ordered by creation."""
        ...

    async def get(self, schedule_id: str) -> ScheduledJobDefinition | None:
        ...

    async def put(self, definition: ScheduledJobDefinition) -> None:
        """Insert or replace a definition by id."""
        ...

    async def delete(self, schedule_id: str) -> bool:
        """Remove a definition. Returns False if it did not exist."""
        ...


class InMemoryScheduleRepository:
    """Process-local repository. Definitions are lost on restart."""

    def __init__(self):
        self._definitions: dict[str, ScheduledJobDefinition] = {}

    async def list(self) -> list[ScheduledJobDefinition]:
        definitions = sorted(self._definitions.values(), key=lambda d: d.created_at)
        return [copy.deepcopy(d) for d in definitions]

    async def get(self, schedule_id: str) -> ScheduledJobDefinition | None:
        definition = self._definitions.get(schedule_id)
        return copy.deepcopy(definition) if definition else None

    async def put(self, definition: ScheduledJobDefinition) -> None:
        self._definitions[definition.id] = copy.deepcopy(definition)

    async def delete(self, schedule_id: str) -> bool:
        return self._definitions.pop(schedule_id, None) is not None


class SqlScheduleRepository:
    """Durable repository backed by the ``scheduled_jobs`` table."""

    def __init__(self, database: Database):
        self.database = database

    async def list(self) -> list[ScheduledJobDefinition]:
        async with self.database.SessionLocal() as session:
            result = await session.execute(
                select(ScheduledJob).order_by(ScheduledJob.created_at.asc())
            )
            rows = result.scalars().all()
            await session.commit()
        return [ScheduledJobDefinition.model_validate(row) for row in rows]

    async def get(self, schedule_id: str) -> ScheduledJobDefinition | None:
        async with self.database.SessionLocal() as session:
            row = await session.get(ScheduledJob, schedule_id)
            await session.commit()
        return ScheduledJobDefinition.model_validate(row) if row else None

    async def put(self, definition: ScheduledJobDefinition) -> None:
        async with self.database.SessionLocal() as session:
            try:
                await session.merge(ScheduledJob(**definition.model_dump()))
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                logger.exception(
                    "Failed to store scheduled job",
                    extra={"schedule_id": definition.id, "name": definition.name},
                )
                raise

    async def delete(self, schedule_id: str) -> bool:
        async with self.database.SessionLocal() as session:
            result = await session.execute(
                delete(ScheduledJob)
                .where(ScheduledJob.id == schedule_id)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result.rowcount > 0


def touch(definition: ScheduledJobDefinition, **changes) -> ScheduledJobDefinition:
    """Copy a definition with changes applied and ``updated_at`` refreshed."""
    return definition.model_copy(
        update={**changes, "updated_at": datetime.now(UTC)}, deep=True
    )
