# jobs/results.py
"""
Typed job results.

Each job kind stores its own result model in the `result` column, tagged by
`kind`. Results are encoded once when the job completes and decoded once
through decode_result, so consumers never branch on raw JSON.
"""
from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from jobs.errors import PermanentJobError
from models.job import MediaGenerationJob


class _ImageResult(BaseModel):
    url: str
    filename: str
    mime_type: str = "image/png"


class AvatarBaselineResult(_ImageResult):
    kind: Literal["avatar-baseline"] = "avatar-baseline"


class VillageBaselineResult(_ImageResult):
    kind: Literal["village-baseline"] = "village-baseline"


class ObjectBaselineResult(_ImageResult):
    kind: Literal["object-baseline"] = "object-baseline"


class VillageCompositeResult(_ImageResult):
    kind: Literal["village-composite"] = "village-composite"
    caption: str | None = None


class ActionImageResult(_ImageResult):
    kind: Literal["action-image"] = "action-image"


JobResult = Annotated[
    Union[
        AvatarBaselineResult,
        VillageBaselineResult,
        ObjectBaselineResult,
        VillageCompositeResult,
        ActionImageResult,
    ],
    Field(discriminator="kind"),
]

_adapter: TypeAdapter[JobResult] = TypeAdapter(JobResult)


def encode_result(result: JobResult) -> dict:
    if not isinstance(result, _ImageResult):
        raise PermanentJobError(f"Handler returned {type(result).__name__}, not a job result")
    return result.model_dump(mode="json")


def decode_payload(data: dict | None) -> JobResult | None:
    if not data:
        return None
    return _adapter.validate_python(data)


def decode_result(job: MediaGenerationJob) -> JobResult | None:
    """Returns the typed result of a completed job, None if it has none."""
    return decode_payload(job.result)
