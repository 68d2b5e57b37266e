# services/openai_images.py
from __future__ import annotations

import asyncio
import base64
import logging
import uuid
from collections.abc import Sequence
from pathlib import Path

import httpx
from openai import AsyncOpenAI

from api.app.config import Settings, get_settings
from jobs.errors import EmptyGenerationError, MissingDependencyError
from models.job import JobType
from services.media_generation import GeneratedMedia

logger = logging.getLogger(__name__)

AVATAR_STYLE = (
    "This is a character for a family-friendly farming village game. "
    "Head and shoulders view, centered, clean background, warm natural lighting."
)


class OpenAIImageGenerator:
    """MediaGenerator backed by the OpenAI Images API, storing output locally."""

    def __init__(self, settings: Settings | None = None, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings or get_settings()
        self.client = client or AsyncOpenAI(api_key=self.settings.openai_api_key)

    async def generate(
        self,
        prompt: str,
        reference_images: Sequence[str] = (),
        job_type: JobType | None = None,
    ) -> GeneratedMedia:
        if job_type == JobType.AVATAR_BASELINE and not reference_images:
            prompt = f"{prompt}\n\n{AVATAR_STYLE}"

        logger.info(
            "Images: generating [%s] %d chars, %d reference(s)",
            job_type.value if job_type else "-",
            len(prompt),
            len(reference_images),
        )

        if reference_images:
            images = [await self._load_reference(ref) for ref in reference_images]
            response = await self.client.images.edit(
                model=self.settings.openai_image_model,
                image=images,
                prompt=prompt,
                size=self.settings.openai_image_size,
            )
        else:
            response = await self.client.images.generate(
                model=self.settings.openai_image_model,
                prompt=prompt,
                size=self.settings.openai_image_size,
            )

        data = response.data[0].b64_json if response.data else None
        if not data:
            raise EmptyGenerationError()

        filename = f"generated-{uuid.uuid4().hex}.png"
        out = self.settings.media_dir / filename
        await asyncio.to_thread(out.write_bytes, base64.b64decode(data))
        logger.info("Images: saved to %s", out)

        return GeneratedMedia(
            url=f"{self.settings.media_base_url.rstrip('/')}/{filename}",
            filename=filename,
            mime_type="image/png",
        )

    async def _load_reference(self, ref: str) -> tuple[str, bytes, str]:
        """Reads a reference image from local media storage or over HTTP."""
        local = self._local_path(ref)
        if local is not None:
            if not local.exists():
                raise MissingDependencyError(f"Reference image missing: {ref}")
            return (local.name, await asyncio.to_thread(local.read_bytes), "image/png")

        async with httpx.AsyncClient(timeout=30.0) as http:
            resp = await http.get(ref)
        if resp.status_code == 404:
            raise MissingDependencyError(f"Reference image missing: {ref}")
        resp.raise_for_status()
        return (Path(resp.url.path).name or "reference.png", resp.content, "image/png")

    def _local_path(self, ref: str) -> Path | None:
        base = self.settings.media_base_url.rstrip("/") + "/"
        if ref.startswith(base):
            return self.settings.media_dir / ref[len(base):]
        if not ref.startswith(("http://", "https://")):
            return Path(ref)
        return None
