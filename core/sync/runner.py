"""Background sync job runner.

Starts sync jobs as asyncio tasks and tracks them until they finish. The
task running a job is the only writer of its terminal state; the runner
only schedules, cancels and awaits.

Usage:
    runner = SyncJobRunner(engine)
    job_id = await runner.start(job)
    ...
    progress = await runner.get_progress(job_id)
"""

import asyncio
from typing import Dict, List, Optional

from core.errors import SyncJobConflictError
from core.models.sync import SyncJob, SyncProgress
from core.observability.logging import get_logger
from core.sync.engine import SyncEngine

logger = get_logger(__name__)

# Placeholder job id while a start is persisting its job
STARTING = "starting"


class SyncJobRunner:
    """Runs at most one job per connection at a time."""

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self._tasks: Dict[str, asyncio.Task] = {}
        self._connections: Dict[str, str] = {}  # connection_id -> job_id

    async def start(self, job: SyncJob, job_id: Optional[str] = None) -> str:
        """Persist a pending job, schedule it and return its id.

        Raises:
            SyncJobConflictError: If the connection already has an active job
                or job_id is already in use
        """
        active_job = self._connections.get(job.connection_id)
        if active_job is not None:
            raise SyncJobConflictError(
                f"Connection {job.connection_id} already has a running sync job ({active_job})"
            )
        # Claimed before the first await so concurrent starts see it
        self._connections[job.connection_id] = STARTING

        try:
            if job_id is not None and (
                job_id in self._tasks or await self.engine.storage.get_sync_progress(job_id) is not None
            ):
                raise SyncJobConflictError(f"Sync job id {job_id} is already in use")
            progress = await self.engine.create_job(job, job_id)
        except BaseException:
            if self._connections.get(job.connection_id) == STARTING:
                del self._connections[job.connection_id]
            raise

        task = asyncio.create_task(self.engine.run_job(progress, job), name=f"sync-{progress.job_id}")

        self._tasks[progress.job_id] = task
        self._connections[job.connection_id] = progress.job_id
        task.add_done_callback(lambda t: self._on_done(progress.job_id, job.connection_id, t))
        # Let the task enter run_job so an early cancel is still recorded
        await asyncio.sleep(0)

        logger.info(
            f"Scheduled sync job {progress.job_id}",
            extra_fields={"job_id": progress.job_id, "connection_id": job.connection_id},
        )
        return progress.job_id

    def _on_done(self, job_id: str, connection_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        if self._connections.get(connection_id) == job_id:
            del self._connections[connection_id]

        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Sync job {job_id} crashed: {error}",
                exc_info=(type(error), error, error.__traceback__),
                extra_fields={"job_id": job_id},
            )

    async def wait(self, job_id: str) -> Optional[SyncProgress]:
        """Wait for a job to finish and return its stored progress."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self.get_progress(job_id)

    async def cancel(self, job_id: str) -> bool:
        """Cancel a running job. Returns False if it is not running."""
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def get_progress(self, job_id: str) -> Optional[SyncProgress]:
        return await self.engine.storage.get_sync_progress(job_id)

    def active_job_ids(self) -> List[str]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def shutdown(self) -> None:
        """Cancel every running job and wait for them to record it."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
