"""
Core interfaces and abstract base classes for the QualityPilot engine.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from qualitypilot.core.types import PageInventory, RunEvent, StepDefinition


class StepGenerator(ABC):
    """Produces the ordered step list for a run."""

    @abstractmethod
    async def generate_steps(
        self,
        prompt: str,
        url: str,
        inventory: Optional[PageInventory] = None,
    ) -> List[StepDefinition]:
        """
        Turn a natural language test description into step definitions.

        Args:
            prompt: Natural language description of the test
            url: Target URL of the run
            inventory: Visible elements on the landing page, when scanned

        Returns:
            Ordered step definitions, possibly containing {{key}} credential
            placeholders
        """
        pass


class EventSink(ABC):
    """Receives the lifecycle event stream of runs."""

    @abstractmethod
    async def emit(self, event: RunEvent) -> None:
        """Deliver one event; must preserve per-run ordering."""
        pass
