# jobs/scheduler.py
"""
Single-flight media generation scheduler.

One job runs at a time. After every job, success or failure, the scheduler
keeps its slot for `rate_limit_delay` seconds so the image provider never
sees back-to-back calls. Ticks that arrive while a job is running are
dropped, not queued; the periodic loop picks up whatever is left.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Coroutine
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobs import queue
from jobs.errors import PermanentJobError
from jobs.handlers import HANDLERS, Handler
from jobs.notifier import JobCompletionNotifier
from jobs.results import decode_payload, encode_result
from models.job import JobType, MediaGenerationJob
from services.media_generation import MediaGenerator
from services.observability import log_job_event

logger = logging.getLogger(__name__)


class MediaJobScheduler:
    """
    Drives jobs PENDING/RETRYING -> PROCESSING -> COMPLETED | RETRYING | FAILED.

    session_factory must be built with expire_on_commit=False: claimed jobs
    are handed to handlers after their session has closed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        generator: MediaGenerator,
        *,
        handlers: dict[JobType, Handler] | None = None,
        notifier: JobCompletionNotifier | None = None,
        poll_interval: float = 1.0,
        rate_limit_delay: float = 5.0,
        cleanup_interval: float = 3600.0,
        retention_hours: float = 24.0,
        max_attempts: int = 3,
        tick_on_enqueue: bool = True,
    ) -> None:
        self.session_factory = session_factory
        self.generator = generator
        self.handlers = handlers if handlers is not None else HANDLERS
        self.notifier = notifier or JobCompletionNotifier()
        self.poll_interval = poll_interval
        self.rate_limit_delay = rate_limit_delay
        self.cleanup_interval = cleanup_interval
        self.retention_hours = retention_hours
        self.max_attempts = max_attempts
        self.tick_on_enqueue = tick_on_enqueue

        self._slot = asyncio.Lock()
        self._loops: list[asyncio.Task] = []
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings,
        session_factory: async_sessionmaker[AsyncSession],
        generator: MediaGenerator,
        notifier: JobCompletionNotifier | None = None,
    ) -> MediaJobScheduler:
        return cls(
            session_factory,
            generator,
            notifier=notifier,
            poll_interval=settings.queue_poll_interval,
            rate_limit_delay=settings.queue_rate_limit_delay,
            cleanup_interval=settings.queue_cleanup_interval,
            retention_hours=settings.queue_retention_hours,
            max_attempts=settings.queue_max_attempts,
        )

    @property
    def is_processing(self) -> bool:
        return self._slot.locked()

    @property
    def running(self) -> bool:
        return bool(self._loops)

    # ─────────────────────────────────────────────
    # enqueue
    # ─────────────────────────────────────────────

    async def enqueue(
        self,
        owner_id: str,
        command: str,
        prompt: str,
        job_type: JobType = JobType.ACTION_IMAGE,
        payload: dict | None = None,
        priority: int = 0,
        parent_job_id: uuid.UUID | None = None,
        max_attempts: int | None = None,
    ) -> MediaGenerationJob:
        async with self.session_factory() as db:
            job = await queue.enqueue(
                db,
                owner_id=owner_id,
                command=command,
                prompt=prompt,
                job_type=job_type,
                payload=payload,
                priority=priority,
                max_attempts=max_attempts or self.max_attempts,
                parent_job_id=parent_job_id,
            )
            await db.commit()

        if job.is_terminal:
            # enqueued under an already failed parent
            self.notifier.notify(job.id)
        elif self.tick_on_enqueue and not self.is_processing:
            self._spawn(self._safe_tick())

        return job

    # ─────────────────────────────────────────────
    # tick
    # ─────────────────────────────────────────────

    async def tick(self) -> MediaGenerationJob | None:
        """
        Runs at most one job. Returns the job as settled, or None when the
        slot was busy or nothing was eligible.
        """
        if self._slot.locked():
            return None

        async with self._slot:
            claimed = await self._claim_next()
            if claimed is None:
                return None

            job, parent_raw = claimed
            try:
                return await self._execute(job, parent_raw)
            finally:
                if self.rate_limit_delay > 0:
                    await asyncio.sleep(self.rate_limit_delay)

    async def _claim_next(self) -> tuple[MediaGenerationJob, dict | None] | None:
        async with self.session_factory() as db:
            job = await queue.next_eligible_job(db)
            if job is None:
                return None

            job = await queue.mark_processing(db, job.id)

            parent_raw = None
            if job.parent_job_id is not None:
                parent = await db.get(MediaGenerationJob, job.parent_job_id)
                if parent is not None and parent.result:
                    parent_raw = dict(parent.result)

            await db.commit()
            return job, parent_raw

    async def _execute(self, job: MediaGenerationJob, parent_raw: dict | None) -> MediaGenerationJob:
        handler = self.handlers.get(job.job_type)
        try:
            if handler is None:
                raise PermanentJobError(f"Unknown job type: {job.job_type}")
            parent_result = decode_payload(parent_raw)
            result = await handler(job, self.generator, parent_result)
            encoded = encode_result(result)
        except Exception as exc:
            return await self._record_failure(job, exc)

        try:
            return await self._record_success(job, encoded)
        except Exception as exc:
            # the completion was rolled back; settle the job in a fresh session
            logger.exception("Job %s: recording completion failed: %s", job.id, exc)
            return await self._record_failure(job, exc)

    async def _record_success(self, job: MediaGenerationJob, encoded: dict) -> MediaGenerationJob:
        async with self.session_factory() as db:
            settled = await queue.mark_completed(db, job.id, encoded)
            await queue.release_children(db, job.id)
            await db.commit()

        self.notifier.notify(job.id)
        return settled

    async def _record_failure(self, job: MediaGenerationJob, exc: Exception) -> MediaGenerationJob:
        error = f"{type(exc).__name__}: {exc}"
        permanent = isinstance(exc, PermanentJobError)
        cascaded: list[uuid.UUID] = []

        logger.warning(
            "Job %s [%s] attempt %d/%d failed: %s",
            job.id,
            job.job_type.value,
            job.attempts + 1,
            job.max_attempts,
            error,
        )

        async with self.session_factory() as db:
            retried = False
            if not permanent and job.attempts + 1 < job.max_attempts:
                retried = await queue.schedule_retry(db, job.id)

            if retried:
                settled = await queue.get_job(db, job.id)
                settled.error = error
                await log_job_event(db, "media_job_retry_scheduled", settled, "warning", error)
            else:
                settled = await queue.mark_failed(db, job.id, error)
                cascaded = await queue.fail_dependents(db, job.id)
                await log_job_event(db, "media_job_failed", settled, "error", error)

            await db.commit()

        if not retried:
            self.notifier.notify(job.id)
            for child_id in cascaded:
                self.notifier.notify(child_id)

        return settled

    async def _safe_tick(self) -> MediaGenerationJob | None:
        try:
            return await self.tick()
        except Exception as exc:
            logger.exception("Scheduler tick error: %s", exc)
            return None

    # ─────────────────────────────────────────────
    # cleanup
    # ─────────────────────────────────────────────

    async def cleanup(self) -> int:
        async with self.session_factory() as db:
            purged = await queue.purge_older_than(db, self.retention_hours)
            await db.commit()
        return purged

    # ─────────────────────────────────────────────
    # lifecycle
    # ─────────────────────────────────────────────

    async def start(self) -> None:
        if self._loops:
            return

        async with self.session_factory() as db:
            await queue.requeue_interrupted(db)
            await db.commit()

        logger.info(
            "Media scheduler starting (poll=%.1fs, rate_limit=%.1fs, cleanup=%.0fs)",
            self.poll_interval,
            self.rate_limit_delay,
            self.cleanup_interval,
        )
        self._loops = [
            asyncio.create_task(self._tick_loop()),
            asyncio.create_task(self._cleanup_loop()),
        ]

    async def stop(self) -> None:
        tasks = self._loops + list(self._background)
        self._loops = []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Media scheduler stopped")

    async def run_forever(self) -> None:
        await self.start()
        try:
            await asyncio.gather(*self._loops)
        finally:
            await self.stop()

    async def _tick_loop(self) -> None:
        while True:
            # drain everything that is due, then wait for the next tick
            while await self._safe_tick() is not None:
                pass
            await asyncio.sleep(self.poll_interval)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                await self.cleanup()
            except Exception as exc:
                logger.exception("Queue cleanup error: %s", exc)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
