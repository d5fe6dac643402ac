# Hey future me - this is the tiny cousin of a full worker orchestrator.
# A large import shouldn't hold the HTTP request open for the whole match
# pass, so start_import hands the pass to this runner and returns the job in
# PROCESSING. Clients poll. Correctness never depends on the runner: every
# step of the pass is persisted, the runner only decides WHERE it executes.
"""Background job runner for long-running job passes."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundJobRunner:
    """Runs job coroutines as asyncio tasks keyed by job id."""

    def __init__(self, stop_timeout: float = 5.0) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._stop_timeout = stop_timeout
        self._stopping = False

    def submit(self, job_id: str, factory: Callable[[], Awaitable[Any]]) -> None:
        """Start ``factory()`` in the background.

        One task per job id; submitting a job that is still running is a
        programming error.
        """
        if self._stopping:
            raise RuntimeError("Job runner is shutting down")
        if job_id in self._tasks:
            raise RuntimeError(f"Job {job_id} is already running")

        async def run() -> Any:
            return await factory()

        task = asyncio.create_task(run(), name=f"job:{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._on_done(job_id, t))
        logger.debug("Scheduled job %s", job_id)

    def _on_done(self, job_id: str, task: asyncio.Task[Any]) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            logger.info("Job %s task cancelled", job_id)
            return
        error = task.exception()
        if error is not None:
            logger.error("Job %s task crashed: %s", job_id, error, exc_info=error)

    def is_running(self, job_id: str) -> bool:
        return job_id in self._tasks

    @property
    def active_jobs(self) -> list[str]:
        return list(self._tasks)

    async def wait(self, job_id: str) -> Any:
        """Await a scheduled job's outcome (mostly for tests)."""
        task = self._tasks.get(job_id)
        if task is None:
            return None
        return await task

    async def stop(self) -> None:
        """Cancel every running job and wait for the tasks to unwind.

        Jobs stay PROCESSING in the database with their progress intact.
        """
        self._stopping = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self._stop_timeout)
            if pending:
                logger.warning("%d job tasks did not stop within %.1fs", len(pending), self._stop_timeout)
        logger.info("Job runner stopped (%d tasks cancelled)", len(tasks))
