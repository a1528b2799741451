"""
Registry of live runs and their cancellation flags.
"""

import threading
from typing import TYPE_CHECKING, Dict, List, Optional

from qualitypilot.error_handling.exceptions import DuplicateRunError
from qualitypilot.monitoring.logger import get_logger

if TYPE_CHECKING:
    from qualitypilot.browser.session import BrowserSession

logger = get_logger(__name__)


class ExecutionHandle:
    """
    Per-run resources plus the cancellation flag.

    The flag is a threading.Event so a cancel request may come from any
    thread; the runner only polls it between steps.
    """

    def __init__(self, run_id: str):
        self.run_id = run_id
        self.session: Optional["BrowserSession"] = None
        self._cancel_requested = threading.Event()
        self._terminal = threading.Event()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    @property
    def is_terminal(self) -> bool:
        return self._terminal.is_set()

    def request_cancel(self) -> bool:
        """Set the flag unless the run already finished."""
        if self.is_terminal:
            return False
        self._cancel_requested.set()
        return True

    def mark_terminal(self) -> None:
        self._terminal.set()


class ExecutionRegistry:
    """
    Maps run ids to execution handles.

    Injected into the runner and the scheduler; the map is the only state
    shared between concurrently executing runs.
    """

    def __init__(self):
        self._handles: Dict[str, ExecutionHandle] = {}
        self._lock = threading.Lock()

    def register(self, run_id: str) -> ExecutionHandle:
        """
        Create the handle for a run.

        Raises:
            DuplicateRunError: A handle for this run id is still registered
        """
        with self._lock:
            if run_id in self._handles:
                raise DuplicateRunError(run_id)
            handle = ExecutionHandle(run_id)
            self._handles[run_id] = handle
        logger.debug("Run registered", extra={"run_id": run_id})
        return handle

    def get(self, run_id: str) -> Optional[ExecutionHandle]:
        with self._lock:
            return self._handles.get(run_id)

    def request_cancel(self, run_id: str) -> bool:
        """
        Ask a live run to stop at its next step boundary.

        Returns:
            True if the flag was set; False for unknown or finished runs
        """
        handle = self.get(run_id)
        if handle is None:
            logger.info("Cancel requested for unknown run", extra={"run_id": run_id})
            return False
        accepted = handle.request_cancel()
        logger.info(
            "Cancel requested",
            extra={"run_id": run_id, "accepted": accepted},
        )
        return accepted

    def release(self, run_id: str) -> None:
        """Drop a run's handle; releasing twice is harmless."""
        with self._lock:
            handle = self._handles.pop(run_id, None)
        if handle is not None:
            handle.mark_terminal()
            logger.debug("Run released", extra={"run_id": run_id})

    def active_run_ids(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, run_id: object) -> bool:
        with self._lock:
            return run_id in self._handles
