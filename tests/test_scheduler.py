# tests/test_scheduler.py
"""Tests for the single-flight media scheduler."""
from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from jobs import queue
from jobs.bridge import wait_for_job
from jobs.errors import MissingDependencyError
from jobs.results import ObjectBaselineResult, VillageCompositeResult, decode_result
from models.base import utcnow
from models.event import Event
from models.job import JobStatus, JobType
from tests.helpers import FakeGenerator, count_with_status, fetch_job, force_due


@pytest.mark.asyncio
async def test_tick_with_empty_queue_returns_none(make_scheduler, generator):
    scheduler = make_scheduler()
    assert await scheduler.tick() is None
    assert generator.calls == []


@pytest.mark.asyncio
async def test_tick_completes_job_with_typed_result(make_scheduler, generator, session_factory):
    scheduler = make_scheduler()
    job = await scheduler.enqueue("user-1", "plant", "a pumpkin", job_type=JobType.OBJECT_BASELINE)

    settled = await scheduler.tick()

    assert settled.id == job.id
    assert settled.status == JobStatus.COMPLETED
    assert generator.calls == [("a pumpkin", [], JobType.OBJECT_BASELINE)]

    stored = await fetch_job(session_factory, job.id)
    assert stored.completed_at is not None
    result = decode_result(stored)
    assert isinstance(result, ObjectBaselineResult)
    assert result.url == "https://cdn.test/img-1.png"


@pytest.mark.asyncio
async def test_always_failing_job_retries_then_fails(make_scheduler, session_factory):
    """max_attempts=3: RETRYING at +2min, RETRYING at +4min, then FAILED."""
    generator = FakeGenerator(fail_times=99)
    scheduler = make_scheduler(generator=generator)
    job = await scheduler.enqueue("user-1", "me", "portrait", max_attempts=3)

    before = utcnow()
    await scheduler.tick()
    stored = await fetch_job(session_factory, job.id)
    assert stored.status == JobStatus.RETRYING
    assert stored.attempts == 1
    assert stored.scheduled_at >= before + timedelta(minutes=2)
    assert stored.scheduled_at <= utcnow() + timedelta(minutes=2)
    assert stored.completed_at is None

    # backoff keeps it out of the next tick
    assert await scheduler.tick() is None

    await force_due(session_factory, job.id)
    before = utcnow()
    await scheduler.tick()
    stored = await fetch_job(session_factory, job.id)
    assert stored.status == JobStatus.RETRYING
    assert stored.attempts == 2
    assert stored.scheduled_at >= before + timedelta(minutes=4)

    await force_due(session_factory, job.id)
    await scheduler.tick()
    stored = await fetch_job(session_factory, job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.attempts == 3
    assert stored.completed_at is not None
    assert "provider unavailable" in stored.error
    assert len(generator.calls) == 3

    # terminal: never picked again
    await force_due(session_factory, job.id)
    assert await scheduler.tick() is None


@pytest.mark.asyncio
async def test_transient_failure_then_success(make_scheduler, session_factory):
    generator = FakeGenerator(fail_times=1)
    scheduler = make_scheduler(generator=generator)
    job = await scheduler.enqueue("user-1", "me", "portrait")

    await scheduler.tick()
    await force_due(session_factory, job.id)
    settled = await scheduler.tick()

    assert settled.status == JobStatus.COMPLETED
    assert settled.attempts == 1
    assert settled.error is None


@pytest.mark.asyncio
async def test_permanent_error_fails_without_retry(make_scheduler, session_factory):
    generator = FakeGenerator(fail_times=1, error=MissingDependencyError("baseline deleted"))
    scheduler = make_scheduler(generator=generator)
    job = await scheduler.enqueue("user-1", "plant", "a rose", max_attempts=3)

    await scheduler.tick()

    stored = await fetch_job(session_factory, job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.attempts == 1
    assert "baseline deleted" in stored.error


@pytest.mark.asyncio
async def test_unknown_job_type_fails_permanently(make_scheduler, session_factory, generator):
    scheduler = make_scheduler(handlers={})
    job = await scheduler.enqueue("user-1", "plant", "a rose")

    await scheduler.tick()

    stored = await fetch_job(session_factory, job.id)
    assert stored.status == JobStatus.FAILED
    assert "Unknown job type" in stored.error
    assert generator.calls == []


@pytest.mark.asyncio
async def test_chain_passes_parent_image_to_composite(make_scheduler, generator, session_factory):
    scheduler = make_scheduler()
    plant = await scheduler.enqueue("user-1", "plant", "a tomato", job_type=JobType.OBJECT_BASELINE)
    composite = await scheduler.enqueue(
        "user-1",
        "plant",
        "place it",
        job_type=JobType.VILLAGE_COMPOSITE,
        payload={"village_baseline_url": "https://cdn.test/village.png", "caption": "Tomato at (1, 2)"},
        parent_job_id=plant.id,
        priority=100,
    )
    assert composite.status == JobStatus.BLOCKED

    first = await scheduler.tick()
    assert first.id == plant.id

    child = await fetch_job(session_factory, composite.id)
    assert child.status == JobStatus.PENDING
    assert child.scheduled_at <= utcnow()

    second = await scheduler.tick()
    assert second.id == composite.id
    assert second.status == JobStatus.COMPLETED

    _, references, job_type = generator.calls[1]
    assert job_type == JobType.VILLAGE_COMPOSITE
    assert references == ["https://cdn.test/village.png", "https://cdn.test/img-1.png"]

    result = decode_result(await fetch_job(session_factory, composite.id))
    assert isinstance(result, VillageCompositeResult)
    assert result.caption == "Tomato at (1, 2)"


@pytest.mark.asyncio
async def test_parent_failure_cascades_to_children(make_scheduler, session_factory, notifier):
    generator = FakeGenerator(fail_times=1, error=MissingDependencyError("gone"))
    scheduler = make_scheduler(generator=generator)
    parent = await scheduler.enqueue("user-1", "plant", "a tomato", job_type=JobType.OBJECT_BASELINE)
    child = await scheduler.enqueue(
        "user-1", "plant", "place it", job_type=JobType.VILLAGE_COMPOSITE, parent_job_id=parent.id
    )
    child_signal = notifier.subscribe(child.id)

    await scheduler.tick()

    stored = await fetch_job(session_factory, child.id)
    assert stored.status == JobStatus.FAILED
    assert stored.completed_at is not None
    assert stored.error == f"parent job {parent.id} failed"
    assert child_signal.is_set()
    assert await scheduler.tick() is None


@pytest.mark.asyncio
async def test_only_one_job_processing_at_a_time(make_scheduler, session_factory):
    gate = asyncio.Event()
    generator = FakeGenerator(gate=gate)
    scheduler = make_scheduler(generator=generator)
    await scheduler.enqueue("user-1", "plant", "one")
    await scheduler.enqueue("user-1", "plant", "two")

    running = asyncio.create_task(scheduler.tick())
    await asyncio.wait_for(generator.started.wait(), timeout=5)

    assert scheduler.is_processing
    # reentrant tick is dropped, not queued
    assert await scheduler.tick() is None
    assert await count_with_status(session_factory, JobStatus.PROCESSING) == 1
    assert len(generator.calls) == 1

    gate.set()
    settled = await running
    assert settled.status == JobStatus.COMPLETED
    assert not scheduler.is_processing
    assert await count_with_status(session_factory, JobStatus.PENDING) == 1


@pytest.mark.asyncio
async def test_rate_limit_delay_holds_the_slot_after_each_job(make_scheduler, session_factory):
    scheduler = make_scheduler(rate_limit_delay=0.5)
    job = await scheduler.enqueue("user-1", "plant", "one")

    running = asyncio.create_task(scheduler.tick())
    await asyncio.sleep(0.2)

    stored = await fetch_job(session_factory, job.id)
    assert stored.status == JobStatus.COMPLETED
    assert scheduler.is_processing
    assert await scheduler.tick() is None

    await running
    assert not scheduler.is_processing


@pytest.mark.asyncio
async def test_enqueue_triggers_immediate_tick(make_scheduler, session_factory, notifier):
    scheduler = make_scheduler(tick_on_enqueue=True, poll_interval=60)
    job = await scheduler.enqueue("user-1", "me", "portrait", job_type=JobType.AVATAR_BASELINE)

    settled = await wait_for_job(
        session_factory, job.id, timeout=5, poll_interval=0.05, notifier=notifier
    )
    assert settled is not None
    assert settled.status == JobStatus.COMPLETED
    await scheduler.stop()


@pytest.mark.asyncio
async def test_failures_are_recorded_as_events(make_scheduler, session_factory):
    generator = FakeGenerator(fail_times=99)
    scheduler = make_scheduler(generator=generator)
    job = await scheduler.enqueue("user-1", "me", "portrait", max_attempts=2)

    await scheduler.tick()
    await force_due(session_factory, job.id)
    await scheduler.tick()

    async with session_factory() as db:
        events = (await db.execute(select(Event).order_by(Event.created_at))).scalars().all()

    assert [e.event_type for e in events] == ["media_job_retry_scheduled", "media_job_failed"]
    assert events[-1].metadata_["job_id"] == str(job.id)
    assert events[-1].level == "error"


@pytest.mark.asyncio
async def test_cleanup_purges_old_terminal_jobs(make_scheduler, session_factory):
    scheduler = make_scheduler(retention_hours=0)
    await scheduler.enqueue("user-1", "plant", "one")
    await scheduler.tick()
    await asyncio.sleep(0.01)

    assert await scheduler.cleanup() == 1
    assert await count_with_status(session_factory, JobStatus.COMPLETED) == 0


@pytest.mark.asyncio
async def test_start_and_stop_run_the_loop(make_scheduler, session_factory, notifier):
    scheduler = make_scheduler(poll_interval=0.05)
    job = await scheduler.enqueue("user-1", "plant", "one")

    await scheduler.start()
    assert scheduler.running
    try:
        settled = await wait_for_job(
            session_factory, job.id, timeout=5, poll_interval=0.05, notifier=notifier
        )
        assert settled.status == JobStatus.COMPLETED
    finally:
        await scheduler.stop()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_start_requeues_interrupted_jobs(make_scheduler, session_factory):
    scheduler = make_scheduler()
    job = await scheduler.enqueue("user-1", "plant", "one")
    await force_due(session_factory, job.id, status=JobStatus.PROCESSING)

    await scheduler.start()
    await scheduler.stop()

    stored = await fetch_job(session_factory, job.id)
    assert stored.status in (JobStatus.PENDING, JobStatus.COMPLETED)


@pytest.mark.asyncio
async def test_schedulers_do_not_share_processing_state(make_scheduler):
    gate = asyncio.Event()
    busy = make_scheduler(generator=FakeGenerator(gate=gate))
    idle = make_scheduler()
    await busy.enqueue("user-1", "plant", "one")

    running = asyncio.create_task(busy.tick())
    await asyncio.wait_for(busy.generator.started.wait(), timeout=5)

    assert busy.is_processing
    assert not idle.is_processing

    gate.set()
    await running


@pytest.mark.asyncio
async def test_handler_returning_untyped_result_fails_the_job(make_scheduler, session_factory, notifier):
    async def untyped_handler(job, generator, parent_result):
        return {"url": "https://cdn.test/raw.png"}

    scheduler = make_scheduler(handlers={JobType.ACTION_IMAGE: untyped_handler})
    job = await scheduler.enqueue("user-1", "show", "the village")
    signal = notifier.subscribe(job.id)

    settled = await scheduler.tick()

    assert settled.status == JobStatus.FAILED
    stored = await fetch_job(session_factory, job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.completed_at is not None
    assert "not a job result" in stored.error
    assert signal.is_set()
    assert await count_with_status(session_factory, JobStatus.PROCESSING) == 0


@pytest.mark.asyncio
async def test_failed_completion_write_is_retried(make_scheduler, session_factory, monkeypatch):
    scheduler = make_scheduler()
    job = await scheduler.enqueue("user-1", "plant", "a rose", max_attempts=3)
    monkeypatch.setattr(
        queue, "release_children", AsyncMock(side_effect=RuntimeError("connection reset"))
    )

    settled = await scheduler.tick()

    assert settled.status == JobStatus.RETRYING
    stored = await fetch_job(session_factory, job.id)
    assert stored.status == JobStatus.RETRYING
    assert stored.attempts == 1
    assert stored.completed_at is None
    assert stored.result is None
    assert "connection reset" in stored.error
    assert await count_with_status(session_factory, JobStatus.PROCESSING) == 0
