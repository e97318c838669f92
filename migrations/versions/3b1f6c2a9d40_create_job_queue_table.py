"""create job_queue table

Revision ID: 3b1f6c2a9d40
Revises:
Create Date: 2025-09-15 10:12:31.204118

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b1f6c2a9d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "job_queue",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("type", sa.Text, nullable=False, comment="Job type identifier"),
        sa.Column(
            "payload", sa.JSON, nullable=False, comment="Opaque handler payload"
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="Job status: pending|processing|completed|failed",
        ),
        sa.Column(
            "priority",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Higher is claimed first",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Number of claims made",
        ),
        sa.Column(
            "max_attempts",
            sa.Integer,
            nullable=False,
            server_default="3",
            comment="Attempt ceiling for automatic retry",
        ),
        sa.Column(
            "scheduled_for",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Earliest time the job can be claimed",
        ),
        sa.Column("error", sa.Text, nullable=True, comment="Last error message"),
        sa.Column("result", sa.JSON, nullable=True, comment="Handler result data"),
        # Worker lease
        sa.Column(
            "locked_by", sa.Text, nullable=True, comment="Worker ID that claimed the job"
        ),
        sa.Column(
            "locked_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When the job was claimed",
        ),
        sa.Column(
            "heartbeat_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Last worker heartbeat",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="job_queue_status_check",
        ),
        sa.CheckConstraint("max_attempts >= 1", name="job_queue_max_attempts_check"),
    )

    # Claim path: pending jobs ordered by priority then due time
    op.create_index(
        "ix_job_queue_claim", "job_queue", ["status", "priority", "scheduled_for"]
    )
    op.create_index("ix_job_queue_type_status", "job_queue", ["type", "status"])
    # Retention cleanup and failed-last-hour stats
    op.create_index(
        "ix_job_queue_status_updated_at", "job_queue", ["status", "updated_at"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_job_queue_status_updated_at", table_name="job_queue")
    op.drop_index("ix_job_queue_type_status", table_name="job_queue")
    op.drop_index("ix_job_queue_claim", table_name="job_queue")
    op.drop_table("job_queue")
