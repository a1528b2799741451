"""
Error taxonomy for QualityPilot.

Step errors abort the step they occur in (and with it the run); run level
errors describe cancellation and infrastructure failures.
"""

from .exceptions import (
    AssertionFailure,
    CancellationSignal,
    DuplicateRunError,
    InfrastructureError,
    QualityPilotError,
    ResolutionError,
    StepError,
    StepGenerationError,
    UnknownActionError,
    ValidationError,
)

__all__ = [
    "QualityPilotError",
    "StepError",
    "ValidationError",
    "ResolutionError",
    "AssertionFailure",
    "UnknownActionError",
    "CancellationSignal",
    "InfrastructureError",
    "StepGenerationError",
    "DuplicateRunError",
]
