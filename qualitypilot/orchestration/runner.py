"""
Step runner: drives one run from browser launch to terminal event.
"""

import asyncio
import base64
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from playwright.async_api import Page

from qualitypilot.browser.actions import ActionExecutor
from qualitypilot.browser.inventory import PageInventoryScanner
from qualitypilot.browser.session import BrowserSession
from qualitypilot.config.settings import Settings, get_settings
from qualitypilot.core.interfaces import EventSink, StepGenerator
from qualitypilot.core.types import (
    EventType,
    PageInventory,
    Run,
    RunEvent,
    RunOptions,
    RunRequest,
    RunStatus,
    StepDefinition,
    StepResult,
    StepStatus,
    epoch_millis,
)
from qualitypilot.error_handling.exceptions import (
    CancellationSignal,
    InfrastructureError,
    StepGenerationError,
)
from qualitypilot.monitoring.logger import get_logger, log_performance_metric
from qualitypilot.orchestration.registry import ExecutionHandle, ExecutionRegistry
from qualitypilot.security.credentials import missing_credentials, substitute_credentials
from qualitypilot.security.sanitizer import get_sanitizer

SessionFactory = Callable[[RunOptions, Optional[Path]], BrowserSession]

CANCELLED_MESSAGE = "Test execution cancelled"


class _StepAborted(Exception):
    """Internal: a step failed and the run must stop."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StepRunner:
    """
    Executes runs step by step and emits their lifecycle events.

    For every step the order is step_started, then the action (and assertion),
    then a screenshot event, then step_completed or step_failed. The first
    failed step ends the run; cancellation is only observed between steps.
    """

    def __init__(
        self,
        step_generator: StepGenerator,
        registry: ExecutionRegistry,
        events: EventSink,
        executor: Optional[ActionExecutor] = None,
        scanner: Optional[PageInventoryScanner] = None,
        session_factory: Optional[SessionFactory] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the runner.

        Args:
            step_generator: Source of step definitions
            registry: Registry holding per-run handles
            events: Sink receiving lifecycle events
            executor: Action executor (built from settings when omitted)
            scanner: Inventory scanner for the pre-flight scan
            session_factory: Builds the browser session for a run's options
            settings: Settings override
        """
        self.settings = settings or get_settings()
        self.step_generator = step_generator
        self.registry = registry
        self.events = events
        self.executor = executor or ActionExecutor()
        self.scanner = scanner or PageInventoryScanner()
        self.session_factory = session_factory or BrowserSession.from_options
        self.sanitizer = get_sanitizer()

    async def execute(self, request: RunRequest, run_id: Optional[str] = None) -> Run:
        """Build a run for the request and execute it."""
        run = Run.from_request(run_id or str(uuid4()), request)
        return await self.run(run, request.credentials)

    async def run(
        self,
        run: Run,
        credentials: Optional[Dict[str, str]] = None,
        handle: Optional[ExecutionHandle] = None,
    ) -> Run:
        """
        Execute a queued run to a terminal state.

        Args:
            run: Run in queued state; mutated in place
            credentials: Values substituted into {{key}} placeholders
            handle: Handle already registered for this run (registers one
                when omitted)

        Returns:
            The same run, now terminal
        """
        credentials = dict(credentials or {})
        secrets = [value for value in credentials.values() if value]
        if handle is None:
            handle = self.registry.register(run.id)
        logger = get_logger("orchestration.runner", run_id=run.id)

        self.sanitizer.register_secrets(secrets)
        try:
            run.mark_running()
            await self._emit(run, EventType.TEST_STARTED, {"prompt": run.prompt})
            logger.info("Run started", extra={"url": run.url})

            try:
                page, steps = await self._prepare(run, handle, credentials)
            except Exception as exc:
                message = self._redact(str(exc), secrets)
                logger.error("Run setup failed", extra={"error": message})
                await self._emit(
                    run,
                    EventType.ERROR,
                    {"message": message, "stack": self._redact(traceback.format_exc(), secrets)},
                )
                await self._finish(run, handle, RunStatus.FAILED, message)
                return run

            await self._execute_steps(run, handle, page, steps, secrets)
        finally:
            await self._cleanup(run, handle)
            self.sanitizer.unregister_secrets(secrets)

        logger.info(
            "Run finished",
            extra={"status": run.status.value, "duration_s": run.duration_seconds},
        )
        return run

    async def _prepare(
        self, run: Run, handle: ExecutionHandle, credentials: Dict[str, str]
    ) -> Tuple[Page, List[Tuple[StepDefinition, StepDefinition]]]:
        """Launch the browser and obtain (original, substituted) step pairs."""
        await self._log(run, f"Launching {run.options.browser.value} browser...")
        video_dir = (
            self.settings.videos_dir / run.id if self.settings.record_video else None
        )
        session = self.session_factory(run.options, video_dir)
        handle.session = session
        page = await session.start()

        inventory: Optional[PageInventory] = None
        if self.settings.scan_page_before_generation:
            inventory = await self._scan(run, page)

        await self._log(run, "Generating test steps...")
        start = asyncio.get_event_loop().time()
        try:
            definitions = await self.step_generator.generate_steps(
                run.prompt, run.url, inventory
            )
        except InfrastructureError:
            raise
        except Exception as exc:
            raise StepGenerationError(f"Step generation failed: {exc}", cause=exc) from exc
        log_performance_metric(
            "step_generation",
            (asyncio.get_event_loop().time() - start) * 1000,
            context={"run_id": run.id},
        )
        if not definitions:
            raise StepGenerationError("Step generator returned no steps")

        missing = missing_credentials(definitions, credentials)
        if missing:
            await self._log(
                run, f"No credential supplied for placeholders: {', '.join(missing)}"
            )
        substituted = substitute_credentials(definitions, credentials)

        await self._log(
            run,
            f"Generated {len(definitions)} test steps",
            steps=[
                {"id": f"step_{i}", "status": StepStatus.PENDING.value, **d.model_dump(mode="json")}
                for i, d in enumerate(definitions)
            ],
        )
        return page, list(zip(definitions, substituted))

    async def _scan(self, run: Run, page: Page) -> Optional[PageInventory]:
        await self._log(run, f"Scanning {run.url} for interactive elements...")
        try:
            await page.goto(run.url, wait_until=self.settings.navigation_wait_until)
        except Exception as exc:
            raise InfrastructureError(
                f"Failed to load {run.url}: {exc}", phase="navigation", cause=exc
            ) from exc
        try:
            return await self.scanner.scan(page)
        except Exception:
            get_logger("orchestration.runner", run_id=run.id).warning(
                "Page scan failed; generating steps without inventory", exc_info=True
            )
            return None

    async def _execute_steps(
        self,
        run: Run,
        handle: ExecutionHandle,
        page: Page,
        steps: List[Tuple[StepDefinition, StepDefinition]],
        secrets: List[str],
    ) -> None:
        index = 0
        try:
            for index, (original, step) in enumerate(steps):
                if handle.cancel_requested:
                    raise CancellationSignal(run.id, CANCELLED_MESSAGE)
                await self._run_step(run, handle, page, index, original, step, secrets)
        except CancellationSignal as exc:
            self._record_skipped(run, steps, index)
            await self._finish(run, handle, RunStatus.CANCELLED, exc.message)
            return
        except _StepAborted as exc:
            self._record_skipped(run, steps, index + 1)
            await self._finish(run, handle, RunStatus.FAILED, exc.message)
            return

        await self._log(run, "All test steps completed successfully")
        await self._finish(run, handle, RunStatus.COMPLETED)

    async def _run_step(
        self,
        run: Run,
        handle: ExecutionHandle,
        page: Page,
        index: int,
        original: StepDefinition,
        step: StepDefinition,
        secrets: List[str],
    ) -> None:
        result = self._new_result(index, original, secrets)
        result.status = StepStatus.RUNNING
        run.steps.append(result)
        await self._emit(run, EventType.STEP_STARTED, {"step": result.snapshot()})

        timeout_s = self.settings.step_timeout_ms / 1000
        try:
            assertion = await asyncio.wait_for(
                self.executor.execute(page, step, base_url=run.url), timeout=timeout_s
            )
        except asyncio.TimeoutError:
            error = f"Step timed out after {self.settings.step_timeout_ms}ms"
        except Exception as exc:
            error = self._redact(str(exc), secrets) or exc.__class__.__name__
            outcome = getattr(exc, "result", None)
            if outcome is not None:
                result.assertion = outcome
        else:
            result.assertion = assertion
            result.status = StepStatus.COMPLETED
            await self._capture(run, handle, result)
            await self._emit(run, EventType.STEP_COMPLETED, {"step": result.snapshot()})
            return

        result.status = StepStatus.FAILED
        result.error = error
        get_logger("orchestration.runner", run_id=run.id).warning(
            "Step failed",
            extra={"step_id": result.id, "action": result.action, "error": error},
        )
        await self._capture(run, handle, result)
        await self._emit(
            run, EventType.STEP_FAILED, {"step": result.snapshot(), "error": error}
        )
        raise _StepAborted(error)

    def _new_result(
        self, index: int, definition: StepDefinition, secrets: List[str]
    ) -> StepResult:
        value = definition.value
        if value:
            value = self._redact(value, secrets)
        return StepResult(
            id=f"step_{index}",
            index=index,
            action=definition.action,
            target=definition.target,
            value=value,
            description=definition.description,
        )

    def _record_skipped(
        self,
        run: Run,
        steps: List[Tuple[StepDefinition, StepDefinition]],
        start: int,
    ) -> None:
        secrets: List[str] = []
        for index in range(start, len(steps)):
            result = self._new_result(index, steps[index][0], secrets)
            result.status = StepStatus.SKIPPED
            run.steps.append(result)

    async def _capture(
        self, run: Run, handle: ExecutionHandle, result: StepResult
    ) -> None:
        """Screenshot after a step; a failed capture only loses evidence."""
        logger = get_logger("orchestration.runner", run_id=run.id)
        try:
            png = await handle.session.screenshot()
        except Exception:
            logger.warning(
                "Screenshot capture failed", extra={"step_id": result.id}, exc_info=True
            )
            return

        reference = f"{run.id}/{result.id}"
        if self.settings.persist_screenshots:
            try:
                directory = self.settings.screenshots_dir / run.id
                directory.mkdir(parents=True, exist_ok=True)
                path = directory / f"{result.id}.png"
                path.write_bytes(png)
                reference = str(path)
            except OSError:
                logger.warning(
                    "Could not persist screenshot",
                    extra={"step_id": result.id},
                    exc_info=True,
                )

        result.screenshot = reference
        run.screenshots.append(reference)
        await self._emit(
            run,
            EventType.SCREENSHOT,
            {"stepId": result.id, "screenshot": base64.b64encode(png).decode("ascii")},
        )

    async def _finish(
        self,
        run: Run,
        handle: ExecutionHandle,
        status: RunStatus,
        error: Optional[str] = None,
    ) -> None:
        handle.mark_terminal()
        run.finish(status, error)
        if status is RunStatus.COMPLETED:
            await self._emit(run, EventType.TEST_COMPLETED, {"timestamp": epoch_millis()})
        else:
            await self._emit(
                run,
                EventType.TEST_FAILED,
                {"error": error, "timestamp": epoch_millis()},
            )

    async def _cleanup(self, run: Run, handle: ExecutionHandle) -> None:
        """Release browser resources and the registry entry; never raises."""
        if not run.is_terminal:
            # Task cancelled from outside the step loop
            await self._finish(run, handle, RunStatus.CANCELLED, CANCELLED_MESSAGE)

        session = handle.session
        if session is not None:
            try:
                await session.close()
                if session.video_path:
                    run.video = session.video_path
            except Exception:
                get_logger("orchestration.runner", run_id=run.id).warning(
                    "Error closing browser session", exc_info=True
                )
            handle.session = None
        self.registry.release(run.id)

    def _redact(self, text: str, secrets: List[str]) -> str:
        return self.sanitizer.redact_secrets(text, secrets)

    async def _log(self, run: Run, message: str, **data: Any) -> None:
        await self._emit(run, EventType.LOG, {"message": message, **data})

    async def _emit(self, run: Run, event_type: EventType, data: Dict[str, Any]) -> None:
        try:
            await self.events.emit(RunEvent(type=event_type, run_id=run.id, data=data))
        except Exception:
            get_logger("orchestration.runner", run_id=run.id).error(
                "Event delivery failed",
                extra={"event_type": event_type.value},
                exc_info=True,
            )
