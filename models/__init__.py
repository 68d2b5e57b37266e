# models/__init__.py
from models.base import Base
from models.event import Event
from models.job import JobStatus, JobType, MediaGenerationJob

__all__ = [
    "Base",
    "Event",
    "JobStatus",
    "JobType",
    "MediaGenerationJob",
]
