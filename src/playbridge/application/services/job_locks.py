"""Per-job locks and cooperative cancellation flags.

The database guard (compare-and-set on status) keeps two processes from
advancing the same job; inside one process this registry serializes the
writers so we don't even get to the point of losing a CAS race.
"""

import asyncio


class JobLockRegistry:
    """Process-wide registry keyed by job id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._cancel_requested: set[str] = set()

    def lock(self, job_id: str) -> asyncio.Lock:
        """The lock for a job, created on first use."""
        lock = self._locks.get(job_id)
        if lock is None:
            lock = self._locks[job_id] = asyncio.Lock()
        return lock

    def request_cancel(self, job_id: str) -> None:
        """Flag a job; workers check the flag between songs."""
        self._cancel_requested.add(job_id)

    def is_cancel_requested(self, job_id: str) -> bool:
        return job_id in self._cancel_requested

    def clear(self, job_id: str) -> None:
        """Forget a finished job (lock and flag)."""
        self._cancel_requested.discard(job_id)
        lock = self._locks.get(job_id)
        if lock is not None and not lock.locked():
            del self._locks[job_id]
