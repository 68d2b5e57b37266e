# jobs/bridge.py
"""
Result bridge between command handlers and the media queue.

A command handler answers the chat platform right away, then hands back a
pending asyncio.Task that resolves to an AsyncWorkResult for the follow-up
message. Two shapes are supported:

- ResultBridge.run(work): the handler awaits provider calls directly inside
  a background task.
- ResultBridge.for_job(job_id): the handler enqueued a job (or the tail of a
  chain) and the task waits for its terminal state, woken by the scheduler's
  notifier and falling back to polling the store.

Either way the task always resolves. Errors and timeouts become a fallback
message; the job itself is never cancelled.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Literal

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobs.errors import JobNotFoundError
from jobs.notifier import JobCompletionNotifier
from jobs.results import JobResult, decode_result
from models.job import JobStatus, MediaGenerationJob

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_MESSAGE = "✅ Done! The village image will be updated shortly."
DEFAULT_FAILURE_MESSAGE = "😕 The image couldn't be generated this time. Please try again later."


class MediaData(BaseModel):
    type: Literal["image", "video", "audio", "file"] = "image"
    url: str
    filename: str
    mime_type: str = "image/png"
    caption: str | None = None


class AsyncWorkResult(BaseModel):
    """
    Follow-up content for the chat adapter.

    No message: keep the acknowledgment as the final word.
    No media: nothing new to show.
    """

    media: MediaData | None = None
    message: str | None = None
    mentions: list[str] = Field(default_factory=list)


def media_from_result(result: JobResult, caption: str | None = None) -> MediaData:
    return MediaData(
        type="image",
        url=result.url,
        filename=result.filename,
        mime_type=result.mime_type,
        caption=caption or getattr(result, "caption", None),
    )


async def wait_for_job(
    session_factory: async_sessionmaker[AsyncSession],
    job_id: uuid.UUID,
    *,
    timeout: float,
    poll_interval: float,
    notifier: JobCompletionNotifier | None = None,
) -> MediaGenerationJob | None:
    """Returns the job once terminal, or None if timeout elapses first."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        event = notifier.subscribe(job_id) if notifier is not None else None
        try:
            async with session_factory() as db:
                job = await db.get(MediaGenerationJob, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.is_terminal:
                return job

            remaining = deadline - loop.time()
            if remaining <= 0:
                return None

            wait = min(poll_interval, remaining)
            if event is None:
                await asyncio.sleep(wait)
            else:
                try:
                    await asyncio.wait_for(event.wait(), timeout=wait)
                except asyncio.TimeoutError:
                    pass
        finally:
            if event is not None:
                notifier.unsubscribe(job_id, event)


async def await_job_result(
    session_factory: async_sessionmaker[AsyncSession],
    job_id: uuid.UUID,
    *,
    timeout: float,
    poll_interval: float,
    notifier: JobCompletionNotifier | None = None,
    render: Callable[[JobResult], AsyncWorkResult] | None = None,
    on_result: Callable[[JobResult], Awaitable[None]] | None = None,
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
    failure_message: str = DEFAULT_FAILURE_MESSAGE,
) -> AsyncWorkResult:
    try:
        job = await wait_for_job(
            session_factory,
            job_id,
            timeout=timeout,
            poll_interval=poll_interval,
            notifier=notifier,
        )
        if job is None:
            logger.warning("Bridge gave up on job %s after %.0fs", job_id, timeout)
            return AsyncWorkResult(message=fallback_message)

        if job.status == JobStatus.FAILED:
            logger.warning("Bridge: job %s failed: %s", job_id, job.error)
            return AsyncWorkResult(message=failure_message)

        result = decode_result(job)
        if result is None:
            return AsyncWorkResult(message=fallback_message)

        if on_result is not None:
            await on_result(result)

        if render is not None:
            return render(result)
        return AsyncWorkResult(media=media_from_result(result))

    except Exception as exc:
        logger.exception("Bridge error for job %s: %s", job_id, exc)
        return AsyncWorkResult(message=failure_message)


async def guard_async_work(
    work: Awaitable[AsyncWorkResult | None],
    *,
    timeout: float | None = None,
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
) -> AsyncWorkResult:
    try:
        if timeout is not None:
            result = await asyncio.wait_for(work, timeout=timeout)
        else:
            result = await work
    except Exception as exc:
        logger.error("Async work failed: %s", exc)
        return AsyncWorkResult(message=fallback_message)
    return result if result is not None else AsyncWorkResult()


class ResultBridge:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: JobCompletionNotifier | None = None,
        *,
        poll_interval: float = 5.0,
        timeout: float = 300.0,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.poll_interval = poll_interval
        self.timeout = timeout

    def run(
        self,
        work: Awaitable[AsyncWorkResult | None],
        fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
    ) -> asyncio.Task[AsyncWorkResult]:
        return asyncio.create_task(
            guard_async_work(work, timeout=self.timeout, fallback_message=fallback_message)
        )

    def for_job(
        self,
        job_id: uuid.UUID,
        *,
        render: Callable[[JobResult], AsyncWorkResult] | None = None,
        on_result: Callable[[JobResult], Awaitable[None]] | None = None,
        fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
        failure_message: str = DEFAULT_FAILURE_MESSAGE,
    ) -> asyncio.Task[AsyncWorkResult]:
        return asyncio.create_task(
            await_job_result(
                self.session_factory,
                job_id,
                timeout=self.timeout,
                poll_interval=self.poll_interval,
                notifier=self.notifier,
                render=render,
                on_result=on_result,
                fallback_message=fallback_message,
                failure_message=failure_message,
            )
        )
