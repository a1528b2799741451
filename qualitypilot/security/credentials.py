"""
Credential placeholder substitution.

Step generators emit ``{{key}}`` tokens instead of real credential values.
The runner swaps them for decrypted values right before execution, so real
values never reach the generator.
"""

import re
from typing import Dict, Iterable, List, Optional, Set

from qualitypilot.core.types import StepDefinition

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_.-]+)\s*\}\}")


def find_placeholders(steps: Iterable[StepDefinition]) -> Set[str]:
    """Credential keys referenced by step values."""
    keys: Set[str] = set()
    for step in steps:
        if step.value:
            keys.update(PLACEHOLDER_PATTERN.findall(step.value))
    return keys


def missing_credentials(
    steps: Iterable[StepDefinition], credentials: Optional[Dict[str, str]]
) -> List[str]:
    """Placeholder keys with no credential value supplied."""
    available = set(credentials or {})
    return sorted(find_placeholders(steps) - available)


def substitute_value(value: str, credentials: Dict[str, str]) -> str:
    """Replace known placeholders in one string; unknown ones stay as-is."""

    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key in credentials:
            return credentials[key]
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, value)


def substitute_credentials(
    steps: List[StepDefinition], credentials: Optional[Dict[str, str]]
) -> List[StepDefinition]:
    """Return new step definitions with credential values substituted."""
    if not credentials:
        return list(steps)

    substituted = []
    for step in steps:
        if step.value and PLACEHOLDER_PATTERN.search(step.value):
            step = step.model_copy(
                update={"value": substitute_value(step.value, credentials)}
            )
        substituted.append(step)
    return substituted
