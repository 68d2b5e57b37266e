# jobs/runtime.py
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.app.config import Settings, get_settings
from db.session import get_session_factory
from jobs.bridge import ResultBridge
from jobs.notifier import JobCompletionNotifier
from jobs.scheduler import MediaJobScheduler
from services.media_generation import MediaGenerator
from services.openai_images import OpenAIImageGenerator


@dataclass
class MediaRuntime:
    """The scheduler and bridge share one notifier so bridges wake on completion."""

    scheduler: MediaJobScheduler
    bridge: ResultBridge
    notifier: JobCompletionNotifier


def build_media_runtime(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    generator: MediaGenerator | None = None,
) -> MediaRuntime:
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()

    if generator is None:
        generator = OpenAIImageGenerator(settings)

    notifier = JobCompletionNotifier()
    scheduler = MediaJobScheduler.from_settings(settings, session_factory, generator, notifier)
    bridge = ResultBridge(
        session_factory,
        notifier,
        poll_interval=settings.bridge_poll_interval,
        timeout=settings.bridge_timeout,
    )
    return MediaRuntime(scheduler=scheduler, bridge=bridge, notifier=notifier)
