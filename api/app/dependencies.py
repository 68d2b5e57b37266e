# api/app/dependencies.py
from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_db
from jobs.runtime import MediaRuntime


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_db():
        yield session


def get_media_runtime(request: Request) -> MediaRuntime:
    """Scheduler and bridge started by the app lifespan."""
    runtime = getattr(request.app.state, "media", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Media scheduler not running",
        )
    return runtime
