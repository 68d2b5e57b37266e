"""media generation queue

Revision ID: 001
Revises:
Create Date: 2026-10-16 00:00:00.000000
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── media_generation_jobs ──
    op.create_table(
        "media_generation_jobs",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("command", sa.String(128), nullable=False),
        sa.Column("prompt", sa.Text, nullable=False),
        sa.Column("job_type", sa.String(32), nullable=False, server_default="ACTION_IMAGE"),
        sa.Column("status", sa.String(32), nullable=False, server_default="PENDING"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("payload", sa.dialects.postgresql.JSONB, server_default="{}"),
        sa.Column("result", sa.dialects.postgresql.JSONB, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "parent_job_id",
            sa.dialects.postgresql.UUID(as_uuid=True),
            sa.ForeignKey("media_generation_jobs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_media_generation_jobs_owner_id", "media_generation_jobs", ["owner_id"])
    op.create_index(
        "ix_media_jobs_eligibility",
        "media_generation_jobs",
        ["status", "scheduled_at", "priority"],
    )
    op.create_index("ix_media_jobs_parent", "media_generation_jobs", ["parent_job_id"])

    # ── events ──
    op.create_table(
        "events",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("level", sa.String(16), server_default="info"),
        sa.Column("source", sa.String(128), nullable=True),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("metadata", sa.dialects.postgresql.JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_events_type", "events", ["event_type"])


def downgrade() -> None:
    for table in ["events", "media_generation_jobs"]:
        op.drop_table(table)
