"""
Orchestration of runs: events, registry, runner and scheduler.
"""

from qualitypilot.orchestration.events import EventBus
from qualitypilot.orchestration.registry import ExecutionHandle, ExecutionRegistry
from qualitypilot.orchestration.runner import CANCELLED_MESSAGE, StepRunner
from qualitypilot.orchestration.scheduler import RunScheduler

__all__ = [
    "CANCELLED_MESSAGE",
    "EventBus",
    "ExecutionHandle",
    "ExecutionRegistry",
    "RunScheduler",
    "StepRunner",
]
