"""
Job record model for the background queue.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Index, Integer, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from jobqueue.infra.database import Base
from jobqueue.infra.types import UTCDateTime


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    """Job types known to the platform. Each payload shape is owned by its handler."""

    SEND_EMAIL = "send_email"
    PROCESS_BACKUP = "process_backup"
    CLEANUP_FILES = "cleanup_files"
    GENERATE_REPORT = "generate_report"
    SCHEDULED_SCRAPING = "scheduled_scraping"
    IMMEDIATE_SCRAPING = "immediate_scraping"
    MAINTENANCE_CLEANUP = "maintenance_cleanup"


class Job(Base):
    """
    Job record for background processing.

    The queue manager is the only writer. Rows move
    pending -> processing -> completed | failed; a failed row only returns
    to pending through an explicit retry.
    """

    __tablename__ = "job_queue"

    # Core fields
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Job type identifier"
    )
    payload: Mapped[Any] = mapped_column(
        JSON, nullable=False, comment="Opaque handler payload"
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Job status: pending|processing|completed|failed",
    )
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Higher is claimed first"
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of claims made"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, comment="Attempt ceiling for automatic retry"
    )
    scheduled_for: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
        comment="Earliest time the job can be claimed",
    )
    error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last error message"
    )
    result: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Handler result data"
    )

    # Worker lease
    locked_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Worker ID that claimed the job"
    )
    locked_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="When the job was claimed"
    )
    heartbeat_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="Last worker heartbeat"
    )

    # Timestamps
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
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="job_queue_status_check",
        ),
        CheckConstraint("max_attempts >= 1", name="job_queue_max_attempts_check"),
        Index("ix_job_queue_claim", "status", "priority", "scheduled_for"),
        Index("ix_job_queue_type_status", "type", "status"),
        Index("ix_job_queue_status_updated_at", "status", "updated_at"),
    )

    def is_active(self) -> bool:
        """Check if job is in an active state (pending, processing)."""
        return self.status in (JobStatus.PENDING.value, JobStatus.PROCESSING.value)

    def can_retry(self) -> bool:
        """Check if another automatic attempt is allowed."""
        return self.attempts < self.max_attempts

    def is_lease_expired(self, visibility_timeout_s: int, now: datetime | None = None) -> bool:
        """Check if a processing job's lease has lapsed."""
        if self.status != JobStatus.PROCESSING.value:
            return False

        last_seen = self.heartbeat_at or self.locked_at
        if last_seen is None:
            return False

        now = now or datetime.now(UTC)
        return (now - last_seen).total_seconds() > visibility_timeout_s
