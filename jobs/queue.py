# jobs/queue.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from jobs.errors import JobNotFoundError, JobStateError
from models.base import utcnow
from models.job import (
    SCHEDULABLE_STATUSES,
    TERMINAL_STATUSES,
    JobStatus,
    JobType,
    MediaGenerationJob,
)

logger = logging.getLogger(__name__)

BACKOFF_BASE = 2


def backoff_delay(attempts: int) -> timedelta:
    return timedelta(minutes=BACKOFF_BASE ** attempts)


async def get_job(db: AsyncSession, job_id: uuid.UUID) -> MediaGenerationJob:
    job = await db.get(MediaGenerationJob, job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


async def enqueue(
    db: AsyncSession,
    owner_id: str,
    command: str,
    prompt: str,
    job_type: JobType = JobType.ACTION_IMAGE,
    payload: dict | None = None,
    priority: int = 0,
    max_attempts: int = 3,
    parent_job_id: uuid.UUID | None = None,
    scheduled_at: datetime | None = None,
) -> MediaGenerationJob:
    """
    Creates a job. A child of an unfinished parent starts BLOCKED and is
    invisible to the scheduler until release_children runs for the parent.
    """
    now = utcnow()
    status = JobStatus.PENDING
    error = None
    completed_at = None

    if parent_job_id is not None:
        parent = await get_job(db, parent_job_id)
        if parent.status == JobStatus.FAILED:
            status = JobStatus.FAILED
            error = f"parent job {parent_job_id} failed"
            completed_at = now
        elif parent.status != JobStatus.COMPLETED:
            status = JobStatus.BLOCKED

    job = MediaGenerationJob(
        owner_id=owner_id,
        command=command,
        prompt=prompt,
        job_type=job_type,
        payload=payload or {},
        priority=priority,
        max_attempts=max_attempts,
        attempts=0,
        status=status,
        error=error,
        completed_at=completed_at,
        parent_job_id=parent_job_id,
        scheduled_at=scheduled_at or now,
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    await db.flush()
    logger.info(
        "Enqueued job %s [%s] owner=%s command=%s status=%s parent=%s",
        job.id,
        job.job_type.value,
        owner_id,
        command,
        job.status.value,
        parent_job_id,
    )
    return job


async def next_eligible_job(db: AsyncSession) -> MediaGenerationJob | None:
    """
    Highest priority, oldest job that is due, schedulable, and either has
    no parent or a COMPLETED parent.
    """
    now = utcnow()
    parent = aliased(MediaGenerationJob)

    stmt = (
        select(MediaGenerationJob)
        .outerjoin(parent, MediaGenerationJob.parent_job_id == parent.id)
        .where(
            MediaGenerationJob.status.in_(SCHEDULABLE_STATUSES),
            MediaGenerationJob.scheduled_at <= now,
            or_(
                MediaGenerationJob.parent_job_id.is_(None),
                parent.status == JobStatus.COMPLETED,
            ),
        )
        .order_by(MediaGenerationJob.priority.desc(), MediaGenerationJob.created_at.asc())
        .limit(1)
        .with_for_update(skip_locked=True, of=MediaGenerationJob)
    )

    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def mark_processing(db: AsyncSession, job_id: uuid.UUID) -> MediaGenerationJob:
    job = await get_job(db, job_id)

    if job.status not in SCHEDULABLE_STATUSES:
        raise JobStateError(f"Job {job_id} is {job.status.value}, cannot start processing")

    if job.parent_job_id is not None:
        parent = await db.get(MediaGenerationJob, job.parent_job_id)
        if parent is not None and parent.status != JobStatus.COMPLETED:
            raise JobStateError(
                f"Job {job_id} waits on parent {parent.id} ({parent.status.value})"
            )

    job.status = JobStatus.PROCESSING
    job.error = None
    await db.flush()

    logger.info(
        "Job %s [%s] processing attempt=%d/%d",
        job.id,
        job.job_type.value,
        job.attempts + 1,
        job.max_attempts,
    )
    return job


async def mark_completed(
    db: AsyncSession,
    job_id: uuid.UUID,
    result: dict | None = None,
) -> MediaGenerationJob:
    job = await get_job(db, job_id)
    job.status = JobStatus.COMPLETED
    job.result = result or {}
    job.error = None
    job.completed_at = utcnow()
    await db.flush()

    logger.info("Job %s completed", job_id)
    return job


async def mark_failed(
    db: AsyncSession,
    job_id: uuid.UUID,
    error: str,
    count_attempt: bool = True,
) -> MediaGenerationJob:
    """
    Terminal failure. count_attempt=False is for jobs that never ran,
    e.g. children of a failed parent.
    """
    job = await get_job(db, job_id)
    if count_attempt and job.attempts < job.max_attempts:
        job.attempts += 1
    job.status = JobStatus.FAILED
    job.error = error
    job.completed_at = utcnow()
    await db.flush()

    logger.error(
        "Job %s permanently failed after %d attempts: %s",
        job_id,
        job.attempts,
        error,
    )
    return job


async def schedule_retry(db: AsyncSession, job_id: uuid.UUID) -> bool:
    """
    Schedules retry with backoff (2, 4, 8... minutes).
    Returns False when the attempt budget is spent; the caller then
    fails the job. No sleeping here.
    """
    job = await get_job(db, job_id)

    if job.attempts >= job.max_attempts:
        return False

    job.attempts += 1
    delay = backoff_delay(job.attempts)
    job.status = JobStatus.RETRYING
    job.scheduled_at = utcnow() + delay
    await db.flush()

    logger.warning(
        "Job %s retry %d/%d in %ds",
        job.id,
        job.attempts,
        job.max_attempts,
        int(delay.total_seconds()),
    )
    return True


async def release_children(db: AsyncSession, parent_id: uuid.UUID) -> int:
    """Makes every waiting child of parent_id due immediately."""
    stmt = (
        update(MediaGenerationJob)
        .where(
            MediaGenerationJob.parent_job_id == parent_id,
            MediaGenerationJob.status.in_((JobStatus.BLOCKED, JobStatus.PENDING)),
        )
        .values(status=JobStatus.PENDING, scheduled_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    result = await db.execute(stmt)

    if result.rowcount:
        logger.info("Released %d child job(s) of %s", result.rowcount, parent_id)
    return result.rowcount


async def fail_dependents(
    db: AsyncSession,
    parent_id: uuid.UUID,
) -> list[uuid.UUID]:
    """
    Cascades a terminal parent failure to every waiting descendant.
    Returns the ids that were failed.
    """
    failed: list[uuid.UUID] = []
    frontier = [parent_id]

    while frontier:
        current = frontier.pop()
        children = await find_child_jobs(db, current)
        for child in children:
            if child.status in TERMINAL_STATUSES or child.status == JobStatus.PROCESSING:
                continue
            await mark_failed(db, child.id, f"parent job {current} failed", count_attempt=False)
            failed.append(child.id)
            frontier.append(child.id)

    return failed


async def find_child_jobs(db: AsyncSession, parent_id: uuid.UUID) -> list[MediaGenerationJob]:
    stmt = (
        select(MediaGenerationJob)
        .where(MediaGenerationJob.parent_job_id == parent_id)
        .order_by(MediaGenerationJob.priority.desc(), MediaGenerationJob.created_at.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def completed_jobs_for_owner(db: AsyncSession, owner_id: str) -> list[MediaGenerationJob]:
    stmt = (
        select(MediaGenerationJob)
        .where(
            MediaGenerationJob.owner_id == owner_id,
            MediaGenerationJob.status == JobStatus.COMPLETED,
        )
        .order_by(MediaGenerationJob.completed_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def requeue_interrupted(db: AsyncSession) -> int:
    """
    Recovers jobs left PROCESSING by a process that died mid-call.
    Only safe while no scheduler in this process is running.
    """
    stmt = (
        update(MediaGenerationJob)
        .where(MediaGenerationJob.status == JobStatus.PROCESSING)
        .values(status=JobStatus.PENDING, scheduled_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    result = await db.execute(stmt)

    if result.rowcount:
        logger.warning("Requeued %d interrupted job(s)", result.rowcount)
    return result.rowcount


async def purge_older_than(db: AsyncSession, hours: float) -> int:
    cutoff = utcnow() - timedelta(hours=hours)
    stmt = (
        delete(MediaGenerationJob)
        .where(
            MediaGenerationJob.status.in_(TERMINAL_STATUSES),
            MediaGenerationJob.completed_at < cutoff,
        )
        .execution_options(synchronize_session="fetch")
    )
    result = await db.execute(stmt)

    logger.info("Purged %d terminal job(s) older than %sh", result.rowcount, hours)
    return result.rowcount
