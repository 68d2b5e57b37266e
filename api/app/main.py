# api/app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from api.app.config import Settings, get_settings
from api.app.routes import health, media_jobs
from jobs.runtime import build_media_runtime

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

MEDIA_ROUTE = "/media"


def mount_media(app: FastAPI, settings: Settings) -> None:
    """Serves generated images so media_base_url resolves against this API."""
    if any(getattr(route, "name", None) == "media" for route in app.routes):
        return
    app.mount(MEDIA_ROUTE, StaticFiles(directory=settings.media_dir), name="media")
    logger.info("Serving %s at %s", settings.media_dir, MEDIA_ROUTE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.serve_media:
        mount_media(app, settings)

    runtime = None
    if settings.run_scheduler_in_api:
        runtime = build_media_runtime(settings)
        await runtime.scheduler.start()
        app.state.media = runtime
    else:
        logger.info("Scheduler disabled in API process; run worker/main.py")
    try:
        yield
    finally:
        if runtime is not None:
            await runtime.scheduler.stop()


app = FastAPI(
    title="VillageOS Media API",
    description="Media generation queue for the farming village bot",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(media_jobs.router, prefix="/v1")
