#!/usr/bin/env python3
"""
Demonstration of the run scheduler, step runner and event bus.

Queues three runs of a fixed step list against example.com with a
concurrency limit of two, cancels the one still waiting for a slot, and
prints the lifecycle events as they arrive. Requires Playwright browsers
(`playwright install chromium`); no OpenAI key is needed.
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from qualitypilot.agents.step_generator import StaticStepGenerator
from qualitypilot.core.types import EventType, RunEvent, RunRequest
from qualitypilot.monitoring.logger import setup_logging
from qualitypilot.orchestration.events import EventBus
from qualitypilot.orchestration.registry import ExecutionRegistry
from qualitypilot.orchestration.runner import StepRunner
from qualitypilot.orchestration.scheduler import RunScheduler

STEPS = [
    {"action": "navigate", "target": "https://example.com/", "description": "Open the page"},
    {"action": "assert", "assertion": {"type": "title", "expected": "Example Domain"}},
    {"action": "assert", "assertion": {"type": "count", "expected": 1, "selector": "h1"}},
    {"action": "click", "target": "More information...", "description": "Follow the link"},
]


def print_event(event: RunEvent) -> None:
    if event.type is EventType.SCREENSHOT:
        print(f"   [{event.run_id}] screenshot for {event.data['stepId']}")
        return
    detail = event.data.get("message") or event.data.get("error") or ""
    step = event.data.get("step", {}).get("id", "")
    print(f"   [{event.run_id}] {event.type.value} {step} {detail}".rstrip())


async def main():
    setup_logging(log_level="WARNING")

    bus = EventBus()
    bus.subscribe(print_event)
    runner = StepRunner(
        step_generator=StaticStepGenerator(STEPS),
        registry=ExecutionRegistry(),
        events=bus,
    )
    scheduler = RunScheduler(runner, max_concurrent=2)

    print("\nQueueing runs...")
    for name in ("alpha", "beta", "gamma"):
        scheduler.submit(
            RunRequest(prompt=f"Demo run {name}", url="https://example.com/"),
            run_id=name,
        )

    print("\nCancelling the queued run 'gamma'...")
    scheduler.cancel("gamma")

    runs = await scheduler.wait_all()

    print("\nResults:")
    for run in runs:
        completed = sum(1 for step in run.steps if step.status.value == "completed")
        print(f"   {run.id}: {run.status.value} ({completed}/{len(run.steps)} steps)")

    stats = bus.get_statistics()
    print(f"\nEvents emitted: {stats['total_events']}")


if __name__ == "__main__":
    asyncio.run(main())
