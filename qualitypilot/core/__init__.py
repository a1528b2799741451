"""
Core module exports.
"""

from qualitypilot.core.interfaces import EventSink, StepGenerator
from qualitypilot.core.types import (
    ActionType,
    AssertionResult,
    AssertionSpec,
    AssertionType,
    BrowserKind,
    EventType,
    InventoryElement,
    InventoryInput,
    PageInventory,
    Run,
    RunEvent,
    RunOptions,
    RunRequest,
    RunStatus,
    StepDefinition,
    StepResult,
    StepStatus,
    Viewport,
    epoch_millis,
)

__all__ = [
    # Interfaces
    "StepGenerator",
    "EventSink",
    # Types
    "ActionType",
    "AssertionResult",
    "AssertionSpec",
    "AssertionType",
    "BrowserKind",
    "EventType",
    "InventoryElement",
    "InventoryInput",
    "PageInventory",
    "Run",
    "RunEvent",
    "RunOptions",
    "RunRequest",
    "RunStatus",
    "StepDefinition",
    "StepResult",
    "StepStatus",
    "Viewport",
    "epoch_millis",
]
