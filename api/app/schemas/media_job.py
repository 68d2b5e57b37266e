# api/app/schemas/media_job.py
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel

from jobs.results import JobResult, decode_result
from models.job import JobStatus, JobType, MediaGenerationJob


class MediaJobDetail(BaseModel):
    id: uuid.UUID
    owner_id: str
    command: str
    job_type: JobType
    status: JobStatus
    priority: int
    attempts: int
    max_attempts: int
    parent_job_id: uuid.UUID | None = None
    scheduled_at: datetime
    created_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    result: JobResult | None = None

    @classmethod
    def from_job(cls, job: MediaGenerationJob) -> MediaJobDetail:
        return cls(
            id=job.id,
            owner_id=job.owner_id,
            command=job.command,
            job_type=job.job_type,
            status=job.status,
            priority=job.priority,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            parent_job_id=job.parent_job_id,
            scheduled_at=job.scheduled_at,
            created_at=job.created_at,
            completed_at=job.completed_at,
            error=job.error,
            result=decode_result(job),
        )


class MediaJobList(BaseModel):
    jobs: list[MediaJobDetail]
