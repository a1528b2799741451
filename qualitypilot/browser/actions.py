"""
Executes one step definition against a page.
"""

from typing import Optional
from urllib.parse import urljoin

from playwright.async_api import Page

from qualitypilot.browser.resolver import ActionResolver, ResolutionContext
from qualitypilot.config.settings import get_settings
from qualitypilot.core.types import ActionType, AssertionResult, StepDefinition
from qualitypilot.error_handling.exceptions import UnknownActionError, ValidationError
from qualitypilot.evaluation.assertions import AssertionEvaluator
from qualitypilot.monitoring.logger import get_logger

KNOWN_ACTIONS = frozenset(action.value for action in ActionType)


def _require(step: StepDefinition, *fields: str) -> None:
    # An empty value is a legitimate fill; an empty target is not
    missing = []
    for name in fields:
        present = getattr(step, name)
        if present is None or (name != "value" and not present.strip()):
            missing.append(name)
    if missing:
        raise ValidationError(
            f"{step.action} action requires {' and '.join(missing)}",
            action=step.action,
            missing_fields=missing,
        )


class ActionExecutor:
    """Dispatches a step's action to the page."""

    def __init__(
        self,
        resolver: Optional[ActionResolver] = None,
        evaluator: Optional[AssertionEvaluator] = None,
        click_settle_ms: Optional[int] = None,
        default_wait_ms: Optional[int] = None,
        navigation_wait_until: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.resolver = resolver or ActionResolver()
        self.evaluator = evaluator or AssertionEvaluator()
        self.click_settle_ms = (
            click_settle_ms if click_settle_ms is not None else settings.click_settle_ms
        )
        self.default_wait_ms = (
            default_wait_ms if default_wait_ms is not None else settings.default_wait_ms
        )
        self.navigation_wait_until = navigation_wait_until or settings.navigation_wait_until
        self.logger = get_logger("browser.actions")

    async def execute(
        self,
        page: Page,
        step: StepDefinition,
        base_url: Optional[str] = None,
    ) -> Optional[AssertionResult]:
        """
        Perform the step's action.

        Args:
            page: Page the run is driving
            step: Step to execute (credentials already substituted)
            base_url: Run URL that relative navigation targets are joined to

        Returns:
            The assertion result for assert steps, otherwise None

        Raises:
            StepError subclasses for validation, resolution and assertion
            failures; Playwright errors propagate unchanged
        """
        if step.action not in KNOWN_ACTIONS:
            raise UnknownActionError(step.action)

        action = ActionType(step.action)
        handler = getattr(self, f"_do_{action.value}")
        self.logger.debug(
            "Executing action",
            extra={"action": action.value, "target": step.target},
        )
        return await handler(page, step, base_url)

    async def _resolve(self, page: Page, step: StepDefinition):
        resolved = await self.resolver.resolve(
            page, step, ResolutionContext(scope_hint=step.context)
        )
        return resolved.element

    async def _do_navigate(self, page, step, base_url):
        _require(step, "target")
        url = step.target.strip()
        if base_url and not url.startswith(("http://", "https://", "file://", "about:")):
            url = urljoin(base_url, url)
        await page.goto(url, wait_until=self.navigation_wait_until)

    async def _do_click(self, page, step, base_url):
        _require(step, "target")
        element = await self._resolve(page, step)
        await element.click()
        if self.click_settle_ms:
            await page.wait_for_timeout(self.click_settle_ms)

    async def _do_fill(self, page, step, base_url):
        _require(step, "target", "value")
        element = await self._resolve(page, step)
        await element.fill(step.value)

    async def _do_select(self, page, step, base_url):
        _require(step, "target", "value")
        element = await self._resolve(page, step)
        await element.select_option(step.value)

    async def _do_wait(self, page, step, base_url):
        if step.value is None or not step.value.strip():
            duration = self.default_wait_ms
        else:
            try:
                duration = int(float(step.value))
            except ValueError:
                raise ValidationError(
                    f"wait action expects milliseconds, got {step.value!r}",
                    action=step.action,
                )
        await page.wait_for_timeout(max(duration, 0))

    async def _do_assert(self, page, step, base_url):
        if step.assertion is None:
            raise ValidationError(
                "assert action requires an assertion",
                action=step.action,
                missing_fields=["assertion"],
            )
        return await self.evaluator.evaluate(page, step.assertion, target=step.target)

    async def _do_screenshot(self, page, step, base_url):
        # Every step is followed by a capture already
        return None

    async def _do_scroll(self, page, step, base_url):
        if not step.target:
            await page.evaluate("window.scrollBy(0, window.innerHeight)")
            return
        element = await self._resolve(page, step)
        await element.scroll_into_view_if_needed()

    async def _do_hover(self, page, step, base_url):
        _require(step, "target")
        element = await self._resolve(page, step)
        await element.hover()

    async def _do_keyboard(self, page, step, base_url):
        _require(step, "value")
        await page.keyboard.press(step.value)

