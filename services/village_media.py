# services/village_media.py
"""
Village image flows used by the command handlers.

Every method returns a pending task resolving to an AsyncWorkResult, so the
caller can acknowledge the chat command first and post the image later.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from ai.prompts.village import (
    avatar_prompt,
    plant_baseline_prompt,
    village_baseline_prompt,
    village_composite_prompt,
    village_show_prompt,
)
from jobs.bridge import AsyncWorkResult, MediaData, ResultBridge, media_from_result
from jobs.errors import MissingDependencyError
from jobs.results import JobResult, decode_result
from jobs.scheduler import MediaJobScheduler
from models.job import JobType, MediaGenerationJob
from services.media_generation import MediaGenerator

logger = logging.getLogger(__name__)

# user-visible work jumps ahead of background baselines
AVATAR_PRIORITY = 10
PLANT_PRIORITY = 5
BACKGROUND_PRIORITY = 0


class BaselineRepository(Protocol):
    async def save_avatar_baseline(self, owner_id: str, url: str) -> None: ...

    async def save_object_baseline(self, object_id: str, url: str) -> None: ...

    async def save_village_baseline(self, village_id: str, url: str) -> None: ...


@dataclass
class VillageSnapshot:
    id: str
    name: str
    baseline_url: str | None = None


@dataclass
class PlantedObject:
    id: str
    description: str
    grid_x: int
    grid_y: int


@dataclass
class VillageMember:
    owner_id: str
    baseline_url: str | None = None


@dataclass
class VillageMediaService:
    scheduler: MediaJobScheduler
    bridge: ResultBridge
    baselines: BaselineRepository
    generator: MediaGenerator | None = None

    # ─────────────────────────────────────────────
    # queue-backed flows
    # ─────────────────────────────────────────────

    async def queue_plant_update(
        self,
        owner_id: str,
        village: VillageSnapshot,
        plant: PlantedObject,
    ) -> asyncio.Task[AsyncWorkResult]:
        """
        Chains plant image -> composite into village -> persist baselines.
        """
        object_job = await self.scheduler.enqueue(
            owner_id=owner_id,
            command="plant",
            prompt=plant_baseline_prompt(plant.description),
            job_type=JobType.OBJECT_BASELINE,
            priority=PLANT_PRIORITY,
        )
        caption = f"{village.name} - Updated with {plant.description} at ({plant.grid_x}, {plant.grid_y})"
        composite_job = await self.scheduler.enqueue(
            owner_id=owner_id,
            command="plant",
            prompt=village_composite_prompt(village.name, plant.description, plant.grid_x, plant.grid_y),
            job_type=JobType.VILLAGE_COMPOSITE,
            payload={
                "village_baseline_url": village.baseline_url,
                "grid_x": plant.grid_x,
                "grid_y": plant.grid_y,
                "caption": caption,
            },
            priority=PLANT_PRIORITY,
            parent_job_id=object_job.id,
        )

        logger.info(
            "Queued plant chain %s -> %s for village %s",
            object_job.id,
            composite_job.id,
            village.id,
        )

        async def persist(result: JobResult) -> None:
            object_result = await self._load_result(object_job)
            if object_result is not None:
                await self.baselines.save_object_baseline(plant.id, object_result.url)
            await self.baselines.save_village_baseline(village.id, result.url)

        def render(result: JobResult) -> AsyncWorkResult:
            return AsyncWorkResult(
                media=media_from_result(result, caption=caption),
                message=f"🏘️ Your village has been updated with the new {plant.description}!",
            )

        return self.bridge.for_job(
            composite_job.id,
            render=render,
            on_result=persist,
            fallback_message="✅ Plant added successfully! The village image will be updated shortly.",
        )

    async def queue_avatar(self, owner_id: str, description: str) -> asyncio.Task[AsyncWorkResult]:
        job = await self.scheduler.enqueue(
            owner_id=owner_id,
            command="me",
            prompt=avatar_prompt(description),
            job_type=JobType.AVATAR_BASELINE,
            priority=AVATAR_PRIORITY,
        )

        async def persist(result: JobResult) -> None:
            await self.baselines.save_avatar_baseline(owner_id, result.url)

        def render(result: JobResult) -> AsyncWorkResult:
            return AsyncWorkResult(
                media=media_from_result(result, caption="Your villager"),
                message="🧑‍🌾 Here's your new look!",
                mentions=[owner_id],
            )

        return self.bridge.for_job(
            job.id,
            render=render,
            on_result=persist,
            fallback_message="Your villager portrait is still being painted. Check back soon!",
        )

    async def queue_village_baseline(
        self,
        owner_id: str,
        village: VillageSnapshot,
        description: str | None = None,
    ) -> asyncio.Task[AsyncWorkResult]:
        job = await self.scheduler.enqueue(
            owner_id=owner_id,
            command="create",
            prompt=village_baseline_prompt(village.name, description),
            job_type=JobType.VILLAGE_BASELINE,
            priority=BACKGROUND_PRIORITY,
        )

        async def persist(result: JobResult) -> None:
            await self.baselines.save_village_baseline(village.id, result.url)

        def render(result: JobResult) -> AsyncWorkResult:
            return AsyncWorkResult(
                media=media_from_result(result, caption=village.name),
                message=f"🌄 Welcome to {village.name}!",
            )

        return self.bridge.for_job(job.id, render=render, on_result=persist)

    async def queue_village_show(
        self,
        owner_id: str,
        village: VillageSnapshot,
        members: list[VillageMember],
    ) -> asyncio.Task[AsyncWorkResult]:
        if not village.baseline_url:
            return self.bridge.run(self._no_baseline(village))

        with_baselines = [m for m in members if m.baseline_url]
        job = await self.scheduler.enqueue(
            owner_id=owner_id,
            command="show",
            prompt=village_show_prompt(village.name, len(with_baselines)),
            job_type=JobType.ACTION_IMAGE,
            payload={"reference_urls": [village.baseline_url] + [m.baseline_url for m in with_baselines]},
            priority=PLANT_PRIORITY,
        )

        def render(result: JobResult) -> AsyncWorkResult:
            return AsyncWorkResult(
                media=media_from_result(result, caption=f"{village.name} and its villagers"),
                message=f"📸 Here is {village.name}!",
                mentions=[m.owner_id for m in with_baselines],
            )

        return self.bridge.for_job(job.id, render=render)

    # ─────────────────────────────────────────────
    # direct flow (no queue)
    # ─────────────────────────────────────────────

    def generate_plant_update(
        self,
        village: VillageSnapshot,
        plant: PlantedObject,
    ) -> asyncio.Task[AsyncWorkResult]:
        return self.bridge.run(
            self._plant_update_now(village, plant),
            fallback_message="✅ Plant added successfully! The village image will be updated shortly.",
        )

    async def _plant_update_now(self, village: VillageSnapshot, plant: PlantedObject) -> AsyncWorkResult:
        if self.generator is None:
            raise RuntimeError("No media generator configured for direct generation")
        if not village.baseline_url:
            raise MissingDependencyError("Village has no baseline image to update")

        plant_media = await self.generator.generate(
            plant_baseline_prompt(plant.description), (), JobType.OBJECT_BASELINE
        )
        await self.baselines.save_object_baseline(plant.id, plant_media.url)

        village_media = await self.generator.generate(
            village_composite_prompt(village.name, plant.description, plant.grid_x, plant.grid_y),
            [village.baseline_url, plant_media.url],
            JobType.VILLAGE_COMPOSITE,
        )
        await self.baselines.save_village_baseline(village.id, village_media.url)

        return AsyncWorkResult(
            media=MediaData(
                type="image",
                url=village_media.url,
                filename=f"village-{village.id}-updated.png",
                mime_type=village_media.mime_type,
                caption=f"{village.name} - Updated with {plant.description} at ({plant.grid_x}, {plant.grid_y})",
            ),
            message=f"🏘️ Your village has been updated with the new {plant.description}!",
        )

    async def _no_baseline(self, village: VillageSnapshot) -> AsyncWorkResult:
        return AsyncWorkResult(message=f"{village.name} doesn't have a picture yet. Try again in a moment!")

    async def _load_result(self, job: MediaGenerationJob) -> JobResult | None:
        async with self.scheduler.session_factory() as db:
            stored = await db.get(MediaGenerationJob, job.id)
            return decode_result(stored) if stored is not None else None
