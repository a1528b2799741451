"""
Browser automation for QualityPilot: sessions, inventory, resolution, actions.
"""

from qualitypilot.browser.actions import ActionExecutor
from qualitypilot.browser.inventory import PageInventoryScanner
from qualitypilot.browser.resolver import (
    ActionResolver,
    ResolutionContext,
    ResolutionStrategy,
    ResolvedTarget,
    StrategyKind,
    looks_like_selector,
)
from qualitypilot.browser.session import BrowserSession

__all__ = [
    "ActionExecutor",
    "ActionResolver",
    "BrowserSession",
    "PageInventoryScanner",
    "ResolutionContext",
    "ResolutionStrategy",
    "ResolvedTarget",
    "StrategyKind",
    "looks_like_selector",
]
