# db/engine.py
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from api.app.config import get_settings

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        url = get_settings().database_url
        pool_args = {} if url.startswith("sqlite") else {"pool_size": 10, "max_overflow": 20}
        _engine = create_async_engine(url, echo=False, **pool_args)
    return _engine
