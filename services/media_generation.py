# services/media_generation.py
"""
Boundary contract for the image generation provider.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from pydantic import BaseModel

from models.job import JobType


class GeneratedMedia(BaseModel):
    url: str
    filename: str
    mime_type: str = "image/png"


class MediaGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        reference_images: Sequence[str] = (),
        job_type: JobType | None = None,
    ) -> GeneratedMedia:
        """Generate one image. May raise on transient or permanent failure."""
        ...
