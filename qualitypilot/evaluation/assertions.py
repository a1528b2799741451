"""
Assertion evaluation against the live page.

Each assertion is evaluated exactly once; there is no polling or retry, so a
step that needs the page to settle should be preceded by a wait step.
"""

from typing import Optional

from playwright.async_api import Page

from qualitypilot.core.types import AssertionResult, AssertionSpec, AssertionType
from qualitypilot.error_handling.exceptions import AssertionFailure, ValidationError
from qualitypilot.monitoring.logger import get_logger

# Keeps failure messages readable when the page body is large
_ACTUAL_PREVIEW_CHARS = 200


def _preview(value) -> str:
    text = str(value)
    if len(text) > _ACTUAL_PREVIEW_CHARS:
        return text[:_ACTUAL_PREVIEW_CHARS] + "..."
    return text


def _expected_count(expected) -> int:
    if isinstance(expected, bool):
        raise ValueError(expected)
    if isinstance(expected, int):
        return expected
    return int(str(expected).strip())


class AssertionEvaluator:
    """Evaluates text, url, title, element and count assertions."""

    def __init__(self) -> None:
        self.logger = get_logger("evaluation.assertions")

    async def evaluate(
        self,
        page: Page,
        spec: AssertionSpec,
        target: Optional[str] = None,
    ) -> AssertionResult:
        """
        Evaluate one assertion.

        Args:
            page: Page to inspect
            spec: Assertion type and expected value
            target: Step target, used as the locator for count assertions
                when the assertion carries no selector

        Returns:
            AssertionResult with passed=True

        Raises:
            AssertionFailure: The observed value does not satisfy the assertion
            ValidationError: A count assertion has no locator or a
                non-integer expected value
        """
        if spec.type is AssertionType.TEXT:
            body = await page.locator("body").text_content() or ""
            passed = str(spec.expected) in body
            # Only a preview of the body is kept on the result
            actual = _preview(body)
        elif spec.type is AssertionType.URL:
            actual = page.url
            passed = str(spec.expected) in actual
        elif spec.type is AssertionType.TITLE:
            actual = await page.title()
            passed = str(spec.expected) in actual
        elif spec.type is AssertionType.ELEMENT:
            visible = await page.locator(str(spec.expected)).first.is_visible()
            actual = "visible" if visible else "not visible"
            passed = visible
        elif spec.type is AssertionType.COUNT:
            actual, passed = await self._count(page, spec, target)
        else:
            raise ValidationError(f"Unsupported assertion type: {spec.type}", action="assert")

        result = AssertionResult(
            type=spec.type, expected=spec.expected, actual=actual, passed=passed
        )
        self.logger.debug(
            "Assertion evaluated",
            extra={"assertion_type": spec.type.value, "passed": passed},
        )

        if not passed:
            raise AssertionFailure(
                f"Assertion failed ({spec.type.value}): expected {spec.expected!r}, "
                f"got {_preview(actual)!r}",
                assertion_type=spec.type.value,
                expected=spec.expected,
                actual=actual,
                result=result,
            )
        return result

    async def _count(self, page: Page, spec: AssertionSpec, target: Optional[str]):
        locator = spec.selector or target
        if not locator or not locator.strip():
            raise ValidationError(
                "count assertion requires a selector or step target",
                action="assert",
                missing_fields=["selector"],
            )
        try:
            expected = _expected_count(spec.expected)
        except ValueError:
            raise ValidationError(
                f"count assertion expects an integer, got {spec.expected!r}",
                action="assert",
            )
        actual = await page.locator(locator.strip()).count()
        return actual, actual == expected
