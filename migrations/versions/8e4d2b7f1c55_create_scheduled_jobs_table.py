"""create scheduled_jobs table

Revision ID: 8e4d2b7f1c55
Revises: 3b1f6c2a9d40
Create Date: 2025-09-15 11:40:07.551902

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "8e4d2b7f1c55"
down_revision: Union[str, Sequence[str], None] = "3b1f6c2a9d40"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "scheduled_jobs",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False, comment="Job type to enqueue"),
        sa.Column(
            "schedule_expression",
            sa.Text,
            nullable=False,
            comment="minute hour day-of-month month day-of-week",
        ),
        sa.Column("config", sa.JSON, nullable=False, comment="Payload template"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="5"),
        sa.Column(
            "is_active", sa.Boolean, nullable=False, server_default=sa.true()
        ),
        sa.Column("last_run", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("next_run", sa.TIMESTAMP(timezone=True), nullable=True),
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
    )

    op.create_index(
        "ix_scheduled_jobs_active_next_run",
        "scheduled_jobs",
        ["is_active", "next_run"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_scheduled_jobs_active_next_run", table_name="scheduled_jobs")
    op.drop_table("scheduled_jobs")
