# jobs/errors.py
"""
Error taxonomy for media generation jobs.

The scheduler retries anything that is not a PermanentJobError, so
unclassified exceptions from providers count as transient.
"""
from __future__ import annotations

import uuid


class JobError(Exception):
    """Base class for queue errors."""


class TransientJobError(JobError):
    """Provider hiccup: network error, rate limit, empty generation."""


class EmptyGenerationError(TransientJobError):
    def __init__(self, message: str = "No image generated by provider") -> None:
        super().__init__(message)


class PermanentJobError(JobError):
    """Retrying cannot help: bad payload, deleted reference data."""


class MissingDependencyError(PermanentJobError):
    """A job references a baseline or parent result that no longer exists."""


class JobNotFoundError(JobError):
    def __init__(self, job_id: uuid.UUID) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobStateError(JobError):
    """Illegal status transition requested on the store."""
