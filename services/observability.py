# services/observability.py
"""
Structured event logging to the events table.

Events are added to the caller's session and committed with the job
transition they describe, so a rolled back transition leaves no event.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from models.event import Event
from models.job import MediaGenerationJob

logger = logging.getLogger(__name__)

QUEUE_SOURCE = "media_queue"


async def log_event(
    db: AsyncSession,
    event_type: str,
    level: str = "info",
    source: str | None = None,
    message: str | None = None,
    metadata: dict | None = None,
) -> Event:
    """Persist a structured event log entry."""
    event = Event(
        event_type=event_type,
        level=level,
        source=source,
        message=message,
        metadata_=metadata,
    )
    db.add(event)
    await db.flush()
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        "[%s/%s] %s %s",
        source or "-",
        event_type,
        message or "",
        metadata or {},
    )
    return event


def job_metadata(job: MediaGenerationJob) -> dict:
    return {
        "job_id": str(job.id),
        "job_type": job.job_type.value,
        "owner_id": job.owner_id,
        "command": job.command,
        "attempts": job.attempts,
        "max_attempts": job.max_attempts,
        "status": job.status.value,
        "parent_job_id": str(job.parent_job_id) if job.parent_job_id else None,
    }


async def log_job_event(
    db: AsyncSession,
    event_type: str,
    job: MediaGenerationJob,
    level: str = "info",
    message: str | None = None,
) -> Event:
    return await log_event(
        db,
        event_type,
        level,
        source=QUEUE_SOURCE,
        message=message,
        metadata=job_metadata(job),
    )
