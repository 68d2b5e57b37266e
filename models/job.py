# models/job.py
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKey, utcnow

JSONType = JSON().with_variant(JSONB(), "postgresql")


class JobStatus(str, Enum):
    PENDING = "PENDING"
    BLOCKED = "BLOCKED"  # waiting on an unfinished parent
    PROCESSING = "PROCESSING"
    RETRYING = "RETRYING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


SCHEDULABLE_STATUSES = (JobStatus.PENDING, JobStatus.RETRYING)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class JobType(str, Enum):
    AVATAR_BASELINE = "AVATAR_BASELINE"
    VILLAGE_BASELINE = "VILLAGE_BASELINE"
    OBJECT_BASELINE = "OBJECT_BASELINE"
    VILLAGE_COMPOSITE = "VILLAGE_COMPOSITE"
    ACTION_IMAGE = "ACTION_IMAGE"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class MediaGenerationJob(Base, UUIDPrimaryKey, TimestampMixin):
    __tablename__ = "media_generation_jobs"
    __table_args__ = (
        Index("ix_media_jobs_eligibility", "status", "scheduled_at", "priority"),
        Index("ix_media_jobs_parent", "parent_job_id"),
    )

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    command: Mapped[str] = mapped_column(String(128), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    job_type: Mapped[JobType] = mapped_column(
        SAEnum(JobType, native_enum=False, length=32, values_callable=_enum_values),
        default=JobType.ACTION_IMAGE,
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        SAEnum(JobStatus, native_enum=False, length=32, values_callable=_enum_values),
        default=JobStatus.PENDING,
        nullable=False,
    )
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # job-type specific inputs: reference urls, grid position, caption
    payload: Mapped[dict] = mapped_column(JSONType, default=dict)
    result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    parent_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("media_generation_jobs.id", ondelete="SET NULL"), nullable=True
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<MediaGenerationJob {self.id} {self.job_type.value} {self.status.value}>"
