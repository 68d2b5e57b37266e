# api/app/routes/media_jobs.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.app.dependencies import get_media_runtime, get_session
from api.app.schemas.media_job import MediaJobDetail, MediaJobList
from jobs.errors import JobNotFoundError
from jobs.queue import completed_jobs_for_owner, find_child_jobs, get_job
from jobs.runtime import MediaRuntime

router = APIRouter(tags=["media-jobs"])


@router.get("/media-jobs/{job_id}", response_model=MediaJobDetail)
async def get_media_job(
    job_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
):
    """Inspect one generation job, including its decoded result."""
    try:
        job = await get_job(db, job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    return MediaJobDetail.from_job(job)


@router.get("/media-jobs/{job_id}/children", response_model=MediaJobList)
async def list_child_jobs(
    job_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
):
    children = await find_child_jobs(db, job_id)
    return MediaJobList(jobs=[MediaJobDetail.from_job(j) for j in children])


@router.get("/owners/{owner_id}/media-jobs", response_model=MediaJobList)
async def list_completed_jobs(
    owner_id: str,
    db: AsyncSession = Depends(get_session),
):
    jobs = await completed_jobs_for_owner(db, owner_id)
    return MediaJobList(jobs=[MediaJobDetail.from_job(j) for j in jobs])


@router.get("/media-queue/status")
async def media_queue_status(runtime: MediaRuntime = Depends(get_media_runtime)):
    scheduler = runtime.scheduler
    return {
        "running": scheduler.running,
        "processing": scheduler.is_processing,
        "poll_interval": scheduler.poll_interval,
        "rate_limit_delay": scheduler.rate_limit_delay,
    }
