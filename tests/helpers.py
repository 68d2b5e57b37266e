# tests/helpers.py
from __future__ import annotations

import asyncio
import uuid
from collections.abc import Sequence
from datetime import timedelta

from sqlalchemy import func, select, update

from models.base import utcnow
from models.job import JobStatus, JobType, MediaGenerationJob
from services.media_generation import GeneratedMedia


class FakeGenerator:
    """Records calls; fails the first `fail_times` calls with `error`."""

    def __init__(
        self,
        fail_times: int = 0,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.fail_times = fail_times
        self.error = error or RuntimeError("provider unavailable")
        self.gate = gate
        self.calls: list[tuple[str, list[str], JobType | None]] = []
        self.started = asyncio.Event()

    async def generate(
        self,
        prompt: str,
        reference_images: Sequence[str] = (),
        job_type: JobType | None = None,
    ) -> GeneratedMedia:
        self.calls.append((prompt, list(reference_images), job_type))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if len(self.calls) <= self.fail_times:
            raise self.error
        n = len(self.calls)
        return GeneratedMedia(url=f"https://cdn.test/img-{n}.png", filename=f"img-{n}.png")


class FakeBaselines:
    def __init__(self) -> None:
        self.avatars: dict[str, str] = {}
        self.objects: dict[str, str] = {}
        self.villages: dict[str, str] = {}

    async def save_avatar_baseline(self, owner_id: str, url: str) -> None:
        self.avatars[owner_id] = url

    async def save_object_baseline(self, object_id: str, url: str) -> None:
        self.objects[object_id] = url

    async def save_village_baseline(self, village_id: str, url: str) -> None:
        self.villages[village_id] = url


async def fetch_job(session_factory, job_id: uuid.UUID) -> MediaGenerationJob | None:
    async with session_factory() as db:
        return await db.get(MediaGenerationJob, job_id)


async def force_due(session_factory, job_id: uuid.UUID, status: JobStatus | None = None) -> None:
    """Pulls scheduled_at into the past, skipping a retry backoff."""
    values = {"scheduled_at": utcnow() - timedelta(seconds=1)}
    if status is not None:
        values["status"] = status
    async with session_factory() as db:
        await db.execute(
            update(MediaGenerationJob).where(MediaGenerationJob.id == job_id).values(**values)
        )
        await db.commit()


async def count_with_status(session_factory, status: JobStatus) -> int:
    async with session_factory() as db:
        result = await db.execute(
            select(func.count()).select_from(MediaGenerationJob).where(MediaGenerationJob.status == status)
        )
        return result.scalar_one()
