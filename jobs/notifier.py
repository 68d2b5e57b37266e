from __future__ import annotations

import asyncio
import uuid


class JobCompletionNotifier:
    """
    In-process signal from the scheduler to waiting bridges.

    Every waiter gets its own event. Waiters subscribe before reading the
    store so a notification fired between the read and the wait is not
    lost, and unsubscribe on every exit so nothing outlives the wait.
    """

    def __init__(self) -> None:
        self._waiters: dict[uuid.UUID, set[asyncio.Event]] = {}

    def __len__(self) -> int:
        """Number of jobs with at least one waiter."""
        return len(self._waiters)

    def subscribe(self, job_id: uuid.UUID) -> asyncio.Event:
        event = asyncio.Event()
        self._waiters.setdefault(job_id, set()).add(event)
        return event

    def unsubscribe(self, job_id: uuid.UUID, event: asyncio.Event) -> None:
        waiters = self._waiters.get(job_id)
        if waiters is None:
            return
        waiters.discard(event)
        if not waiters:
            del self._waiters[job_id]

    def notify(self, job_id: uuid.UUID) -> None:
        for event in self._waiters.pop(job_id, ()):
            event.set()
