"""
Recurring job definition model.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from jobqueue.infra.database import Base
from jobqueue.infra.types import UTCDateTime


class ScheduledJob(Base):
    """
    Recurring job definition.

    Every time ``next_run`` passes, the scheduler enqueues a job of ``type``
    whose payload is a copy of ``config``.
    """

    __tablename__ = "scheduled_jobs"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False, comment="Job type to enqueue")
    schedule_expression: Mapped[str] = mapped_column(
        Text, nullable=False, comment="minute hour day-of-month month day-of-week"
    )
    config: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="Payload template"
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Written only by the scheduler
    last_run: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    next_run: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("ix_scheduled_jobs_active_next_run", "is_active", "next_run"),
    )
