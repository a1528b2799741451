"""
Exception hierarchy for QualityPilot step execution.

Every failure the engine reports carries a human readable message plus
structured details so it can be logged, serialized into events, and
classified as fatal to a step or fatal to a run.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union


class QualityPilotError(Exception):
    """Base exception for all QualityPilot errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None
        }


class StepError(QualityPilotError):
    """Base class for failures that are fatal to the current step."""
    pass


class ValidationError(StepError):
    """A step is missing a field its action requires."""

    def __init__(
        self,
        message: str,
        action: Optional[str] = None,
        missing_fields: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.action = action
        self.missing_fields = missing_fields or []
        self.details.update({
            "action": action,
            "missing_fields": self.missing_fields
        })


class ResolutionError(StepError):
    """No resolution strategy produced a visible element for a target."""

    def __init__(
        self,
        message: str,
        action: Optional[str] = None,
        target: Optional[str] = None,
        strategies_attempted: Optional[List[str]] = None,
        visible_candidates: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.action = action
        self.target = target
        self.strategies_attempted = strategies_attempted or []
        self.visible_candidates = visible_candidates or []
        self.details.update({
            "action": action,
            "target": target,
            "strategies_attempted": self.strategies_attempted,
            "visible_candidates": self.visible_candidates
        })


class AssertionFailure(StepError):
    """The observed page state differs from the expected value."""

    def __init__(
        self,
        message: str,
        assertion_type: str,
        expected: Union[int, str],
        actual: Optional[Union[int, str]],
        result: Optional[Any] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.assertion_type = assertion_type
        self.expected = expected
        self.actual = actual
        self.result = result
        self.details.update({
            "assertion_type": assertion_type,
            "expected": expected
        })


class UnknownActionError(StepError):
    """The step's action tag is not in the recognized set."""

    def __init__(self, action: str, **kwargs):
        super().__init__(f"Unknown action: {action}", **kwargs)
        self.action = action
        self.details.update({"action": action})


class CancellationSignal(QualityPilotError):
    """Cancellation was observed at a step boundary; fatal to the run."""

    def __init__(
        self,
        run_id: str,
        message: str = "Test execution cancelled",
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.run_id = run_id
        self.details.update({"run_id": run_id})


class InfrastructureError(QualityPilotError):
    """Session setup, navigation or generation failed before any step ran."""

    def __init__(
        self,
        message: str,
        phase: str,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.phase = phase
        self.details.update({"phase": phase})


class StepGenerationError(InfrastructureError):
    """The step generator failed or returned an unusable step list."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, phase="step_generation", **kwargs)


class DuplicateRunError(QualityPilotError):
    """A handle for this run id is already registered."""

    def __init__(self, run_id: str, **kwargs):
        super().__init__(f"Run {run_id} is already registered", **kwargs)
        self.run_id = run_id
        self.details.update({"run_id": run_id})
