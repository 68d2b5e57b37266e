# jobs/handlers.py
"""
Job handlers for each job type.

A handler turns one job into a typed result by calling the media
generator. Handlers never touch the database: the scheduler loads
everything they need (the job and its parent's result) beforehand, so
no transaction is held open across the provider call.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, ValidationError

from jobs.errors import MissingDependencyError, PermanentJobError
from jobs.results import (
    ActionImageResult,
    AvatarBaselineResult,
    JobResult,
    ObjectBaselineResult,
    VillageBaselineResult,
    VillageCompositeResult,
)
from models.job import JobType, MediaGenerationJob
from services.media_generation import MediaGenerator

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────
# payloads
# ─────────────────────────────────────────────

class ImagePayload(BaseModel):
    reference_urls: list[str] = []


class CompositePayload(BaseModel):
    village_baseline_url: str | None = None
    object_url: str | None = None
    grid_x: int | None = None
    grid_y: int | None = None
    caption: str | None = None


def _parse_payload(job: MediaGenerationJob, model: type[BaseModel]) -> BaseModel:
    try:
        return model.model_validate(job.payload or {})
    except ValidationError as exc:
        raise PermanentJobError(f"Invalid payload for {job.job_type.value}: {exc}") from exc


Handler = Callable[[MediaGenerationJob, MediaGenerator, JobResult | None], Awaitable[JobResult]]


# ─────────────────────────────────────────────
# handlers
# ─────────────────────────────────────────────

async def handle_avatar_baseline(
    job: MediaGenerationJob,
    generator: MediaGenerator,
    parent_result: JobResult | None,
) -> JobResult:
    payload = _parse_payload(job, ImagePayload)
    media = await generator.generate(job.prompt, payload.reference_urls, JobType.AVATAR_BASELINE)
    return AvatarBaselineResult(url=media.url, filename=media.filename, mime_type=media.mime_type)


async def handle_village_baseline(
    job: MediaGenerationJob,
    generator: MediaGenerator,
    parent_result: JobResult | None,
) -> JobResult:
    payload = _parse_payload(job, ImagePayload)
    media = await generator.generate(job.prompt, payload.reference_urls, JobType.VILLAGE_BASELINE)
    return VillageBaselineResult(url=media.url, filename=media.filename, mime_type=media.mime_type)


async def handle_object_baseline(
    job: MediaGenerationJob,
    generator: MediaGenerator,
    parent_result: JobResult | None,
) -> JobResult:
    payload = _parse_payload(job, ImagePayload)
    media = await generator.generate(job.prompt, payload.reference_urls, JobType.OBJECT_BASELINE)
    return ObjectBaselineResult(url=media.url, filename=media.filename, mime_type=media.mime_type)


async def handle_village_composite(
    job: MediaGenerationJob,
    generator: MediaGenerator,
    parent_result: JobResult | None,
) -> JobResult:
    """
    Composites an object into the village baseline. The object image is
    the parent's result when chained, otherwise payload.object_url.
    """
    payload = _parse_payload(job, CompositePayload)

    if not payload.village_baseline_url:
        raise MissingDependencyError("Village has no baseline image to update")

    object_url = parent_result.url if parent_result is not None else payload.object_url
    if not object_url:
        raise MissingDependencyError(f"Job {job.id} has no object image to composite")

    media = await generator.generate(
        job.prompt,
        [payload.village_baseline_url, object_url],
        JobType.VILLAGE_COMPOSITE,
    )
    return VillageCompositeResult(
        url=media.url,
        filename=media.filename,
        mime_type=media.mime_type,
        caption=payload.caption,
    )


async def handle_action_image(
    job: MediaGenerationJob,
    generator: MediaGenerator,
    parent_result: JobResult | None,
) -> JobResult:
    payload = _parse_payload(job, ImagePayload)
    references = list(payload.reference_urls)
    if parent_result is not None:
        references.append(parent_result.url)
    media = await generator.generate(job.prompt, references, JobType.ACTION_IMAGE)
    return ActionImageResult(url=media.url, filename=media.filename, mime_type=media.mime_type)


HANDLERS: dict[JobType, Handler] = {
    JobType.AVATAR_BASELINE: handle_avatar_baseline,
    JobType.VILLAGE_BASELINE: handle_village_baseline,
    JobType.OBJECT_BASELINE: handle_object_baseline,
    JobType.VILLAGE_COMPOSITE: handle_village_composite,
    JobType.ACTION_IMAGE: handle_action_image,
}
