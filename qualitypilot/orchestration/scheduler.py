"""
Bounded concurrent execution of runs.
"""

import asyncio
from collections import deque
from typing import Deque, Dict, List, Optional
from uuid import uuid4

from qualitypilot.config.settings import get_settings
from qualitypilot.core.types import EventType, Run, RunEvent, RunRequest, RunStatus, epoch_millis
from qualitypilot.monitoring.logger import get_logger
from qualitypilot.orchestration.registry import ExecutionHandle
from qualitypilot.orchestration.runner import CANCELLED_MESSAGE, StepRunner

logger = get_logger(__name__)


class RunScheduler:
    """
    Queues runs and executes at most ``max_concurrent`` of them at a time.

    Runs are registered on submission, so a run can be cancelled while it is
    still waiting for a slot; it then finishes without launching a browser.
    Only the most recently finished runs stay available through ``get_run``.
    """

    def __init__(
        self,
        runner: StepRunner,
        max_concurrent: Optional[int] = None,
        finished_runs_retained: int = 100,
    ):
        self.runner = runner
        self.registry = runner.registry
        self.max_concurrent = max_concurrent or get_settings().max_concurrent_runs
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._runs: Dict[str, Run] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._finished: Deque[str] = deque()
        self._finished_runs_retained = finished_runs_retained
        logger.info(
            "Run scheduler initialized", extra={"max_concurrent": self.max_concurrent}
        )

    def submit(self, request: RunRequest, run_id: Optional[str] = None) -> Run:
        """
        Queue a run; must be called from within the event loop.

        Returns:
            The queued run, updated in place as it executes
        """
        run = Run.from_request(run_id or str(uuid4()), request)
        handle = self.registry.register(run.id)
        self._runs[run.id] = run
        if run.id in self._finished:
            self._finished.remove(run.id)
        task = asyncio.create_task(self._execute(run, request.credentials, handle))
        self._tasks[run.id] = task
        task.add_done_callback(lambda _: self._on_done(run.id))
        logger.info("Run queued", extra={"run_id": run.id})
        return run

    def _on_done(self, run_id: str) -> None:
        self._tasks.pop(run_id, None)
        self._finished.append(run_id)
        while len(self._finished) > self._finished_runs_retained:
            self._runs.pop(self._finished.popleft(), None)

    async def _execute(
        self, run: Run, credentials: Dict[str, str], handle: ExecutionHandle
    ) -> Run:
        async with self._semaphore:
            if handle.cancel_requested:
                return await self._cancel_queued(run, handle)
            return await self.runner.run(run, credentials, handle)

    async def _cancel_queued(self, run: Run, handle: ExecutionHandle) -> Run:
        handle.mark_terminal()
        run.finish(RunStatus.CANCELLED, CANCELLED_MESSAGE)
        self.registry.release(run.id)
        logger.info("Queued run cancelled", extra={"run_id": run.id})
        await self.runner.events.emit(
            RunEvent(
                type=EventType.TEST_FAILED,
                run_id=run.id,
                data={"error": CANCELLED_MESSAGE, "timestamp": epoch_millis()},
            )
        )
        return run

    def cancel(self, run_id: str) -> bool:
        """Request cancellation; returns immediately."""
        return self.registry.request_cancel(run_id)

    def get_run(self, run_id: str) -> Optional[Run]:
        return self._runs.get(run_id)

    def pending_run_ids(self) -> List[str]:
        return list(self._tasks)

    def forget(self, run_id: str) -> bool:
        """Drop a finished run; returns False for unknown or unfinished runs."""
        if run_id in self._tasks or run_id not in self._runs:
            return False
        del self._runs[run_id]
        if run_id in self._finished:
            self._finished.remove(run_id)
        return True

    async def wait(self, run_id: str) -> Run:
        """Wait for one run to reach a terminal state."""
        task = self._tasks.get(run_id)
        if task is not None:
            return await task
        run = self._runs.get(run_id)
        if run is None:
            raise KeyError(run_id)
        return run

    async def wait_all(self) -> List[Run]:
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return list(self._runs.values())

    async def shutdown(self) -> None:
        """Cancel everything still queued or running and wait for cleanup."""
        logger.info("Shutting down run scheduler")
        for run_id in list(self._tasks):
            self.cancel(run_id)
        await self.wait_all()
        logger.info("Run scheduler shutdown complete")
