# services/delivery.py
"""
Contract with the chat platform adapters (Discord, SMS).

Adapters render results; this module only sequences the immediate
acknowledgment and the follow-up.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict

from jobs.bridge import AsyncWorkResult, MediaData

logger = logging.getLogger(__name__)


class CommandError(BaseModel):
    type: Literal["NOT_FOUND", "VALIDATION", "INTERNAL"]
    message: str


class CommandResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    message: str | None = None
    media: MediaData | None = None
    async_work: asyncio.Task | None = None
    error: CommandError | None = None


class PlatformAdapter(Protocol):
    async def send_result(self, channel_id: str, result: CommandResult) -> None: ...

    async def send_follow_up(self, channel_id: str, follow_up: AsyncWorkResult) -> None: ...

    async def send_error(self, channel_id: str, error: CommandError) -> None: ...


async def deliver_command_result(
    adapter: PlatformAdapter,
    channel_id: str,
    result: CommandResult,
) -> AsyncWorkResult | None:
    """
    Sends the acknowledgment, then waits for async work and relays it.
    A follow-up with neither message nor media is not sent.
    """
    if result.error is not None:
        await adapter.send_error(channel_id, result.error)
    else:
        await adapter.send_result(channel_id, result)

    if result.async_work is None:
        return None

    follow_up = await result.async_work
    if follow_up.message is None and follow_up.media is None:
        logger.info("No follow-up for channel %s", channel_id)
        return follow_up

    await adapter.send_follow_up(channel_id, follow_up)
    return follow_up
