# api/app/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application configuration.

    Loads environment variables from `.env` and provides
    typed access across API, worker, and services.
    """

    # ─────────────────────────────────────────────
    # Pydantic Settings Config
    # ─────────────────────────────────────────────
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ─────────────────────────────────────────────
    # Database
    # ─────────────────────────────────────────────
    database_url: str
    database_url_sync: str | None = None

    # ─────────────────────────────────────────────
    # OpenAI image generation
    # ─────────────────────────────────────────────
    openai_api_key: str
    openai_image_model: str = "gpt-image-1"
    openai_image_size: str = "1024x1024"

    # ─────────────────────────────────────────────
    # API
    # ─────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    run_scheduler_in_api: bool = True

    # ─────────────────────────────────────────────
    # Media Storage
    # ─────────────────────────────────────────────
    media_storage_path: str = "/data/media"
    media_base_url: str = "http://localhost:8000/media"
    # serve media_storage_path at /media from the API; disable when a CDN or
    # reverse proxy serves it and media_base_url points there
    serve_media: bool = True

    # ─────────────────────────────────────────────
    # Media generation queue
    # ─────────────────────────────────────────────
    queue_poll_interval: float = 1.0
    queue_rate_limit_delay: float = 5.0
    queue_max_attempts: int = 3
    queue_cleanup_interval: float = 3600.0
    queue_retention_hours: float = 24.0

    # ─────────────────────────────────────────────
    # Result bridge (follow-up delivery)
    # ─────────────────────────────────────────────
    bridge_poll_interval: float = 5.0
    bridge_timeout: float = 300.0

    # ─────────────────────────────────────────────
    # Derived Properties
    # ─────────────────────────────────────────────
    @property
    def media_dir(self) -> Path:
        """
        Ensures media storage directory exists
        and returns Path object.
        """
        p = Path(self.media_storage_path)
        p.mkdir(parents=True, exist_ok=True)
        return p


# ─────────────────────────────────────────────
# Cached Settings Instance
# ─────────────────────────────────────────────
@lru_cache
def get_settings() -> Settings:
    """
    Returns a cached Settings instance so config
    is only loaded once per process.
    """
    return Settings()
