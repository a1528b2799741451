"""
In-process publish/subscribe bus for run lifecycle events.
"""

import asyncio
import inspect
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, List, Optional

from qualitypilot.core.interfaces import EventSink
from qualitypilot.core.types import EventType, RunEvent
from qualitypilot.monitoring.logger import get_logger, log_run_event

logger = get_logger(__name__)

EventHandler = Callable[[RunEvent], Any]

# Subscription key for handlers that want every event type
ALL_EVENTS = "*"

TERMINAL_EVENT_TYPES = frozenset({EventType.TEST_COMPLETED, EventType.TEST_FAILED})


class EventBus(EventSink):
    """
    Fans run events out to subscribers.

    Each emit awaits every handler before returning, so events of one run
    reach observers in the order the runner produced them. A failing handler
    is logged and never affects the run or other handlers.

    History is kept for live runs and for the most recently finished ones;
    older finished runs are dropped once their terminal event is recorded.
    """

    def __init__(self, history_limit: int = 1000, finished_runs_retained: int = 10):
        """
        Initialize the event bus.

        Args:
            history_limit: Events kept per run
            finished_runs_retained: Finished runs whose history is kept
        """
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._history: Dict[str, List[RunEvent]] = {}
        self._history_limit = history_limit
        self._finished_runs: Deque[str] = deque()
        self._finished_runs_retained = finished_runs_retained
        self._event_count: Dict[str, int] = defaultdict(int)

    def subscribe(
        self, handler: EventHandler, event_type: Optional[EventType] = None
    ) -> None:
        """
        Subscribe to one event type, or to all of them.

        Args:
            handler: Sync or async callable receiving the RunEvent
            event_type: Event type to receive; None subscribes to everything
        """
        key = event_type.value if event_type else ALL_EVENTS
        self._subscribers[key].append(handler)
        logger.debug(f"Subscription added for {key}")

    def unsubscribe(
        self, handler: EventHandler, event_type: Optional[EventType] = None
    ) -> None:
        key = event_type.value if event_type else ALL_EVENTS
        if handler in self._subscribers[key]:
            self._subscribers[key].remove(handler)
            logger.debug(f"Subscription removed for {key}")

    async def emit(self, event: RunEvent) -> None:
        """Record the event and deliver it to matching subscribers."""
        self._add_to_history(event)
        self._event_count[event.type.value] += 1
        log_run_event(event.type.value, event.run_id)

        handlers = self._subscribers.get(event.type.value, []) + self._subscribers.get(
            ALL_EVENTS, []
        )
        if not handlers:
            return

        results = await asyncio.gather(
            *(self._deliver(handler, event) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Event handler failed",
                    extra={
                        "event_type": event.type.value,
                        "run_id": event.run_id,
                        "handler": getattr(handler, "__name__", repr(handler)),
                    },
                    exc_info=result,
                )

    async def _deliver(self, handler: EventHandler, event: RunEvent) -> None:
        result = handler(event)
        if inspect.isawaitable(result):
            await result

    def _add_to_history(self, event: RunEvent) -> None:
        history = self._history.setdefault(event.run_id, [])
        history.append(event)
        if len(history) > self._history_limit:
            del history[: len(history) - self._history_limit]

        if event.type in TERMINAL_EVENT_TYPES and event.run_id not in self._finished_runs:
            self._finished_runs.append(event.run_id)
            while len(self._finished_runs) > self._finished_runs_retained:
                self._history.pop(self._finished_runs.popleft(), None)

    def history(
        self, run_id: str, event_type: Optional[EventType] = None
    ) -> List[RunEvent]:
        """Events recorded for a run, oldest first."""
        events = list(self._history.get(run_id, []))
        if event_type:
            events = [e for e in events if e.type is event_type]
        return events

    def clear_history(self, run_id: Optional[str] = None) -> None:
        if run_id is None:
            self._history.clear()
            self._finished_runs.clear()
        else:
            self._history.pop(run_id, None)
            if run_id in self._finished_runs:
                self._finished_runs.remove(run_id)

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "total_events": sum(self._event_count.values()),
            "event_counts": dict(self._event_count),
            "runs_tracked": len(self._history),
            "active_subscriptions": {
                key: len(handlers) for key, handlers in self._subscribers.items()
            },
        }
