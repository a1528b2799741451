"""Step generators.

Turn a natural language test description into the ordered step definitions
the runner executes. Credential values are never sent to a generator; steps
refer to them through {{key}} placeholders.
"""

import json
import re
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from qualitypilot.config.agent_prompts import (
    PAGE_INVENTORY_TEMPLATE,
    STEP_GENERATOR_SYSTEM_PROMPT,
    STEP_GENERATOR_USER_TEMPLATE,
)
from qualitypilot.config.settings import get_settings
from qualitypilot.core.interfaces import StepGenerator
from qualitypilot.core.types import PageInventory, StepDefinition
from qualitypilot.error_handling.exceptions import StepGenerationError
from qualitypilot.models.openai_client import OpenAIClient
from qualitypilot.monitoring.logger import get_logger

logger = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def _strip_fences(text: str) -> str:
    match = _FENCE_PATTERN.match(text)
    return match.group(1) if match else text.strip()


def parse_step_definitions(content: Union[str, dict, list]) -> List[StepDefinition]:
    """
    Parse generator output into step definitions.

    Accepts a JSON string (optionally wrapped in a markdown code fence), a bare
    list of step objects, or an object with a "steps" list.

    Raises:
        StepGenerationError: The content is not valid JSON or a step is malformed
    """
    data: Any = content
    if isinstance(content, str):
        try:
            data = json.loads(_strip_fences(content))
        except json.JSONDecodeError as e:
            raise StepGenerationError(f"Step generator returned invalid JSON: {e}")

    if isinstance(data, dict):
        data = data.get("steps")
    if not isinstance(data, list):
        raise StepGenerationError("Step generator output must be a list of steps")

    steps = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise StepGenerationError(f"Step {index} is not an object")
        try:
            steps.append(StepDefinition.model_validate(item))
        except PydanticValidationError as e:
            raise StepGenerationError(f"Step {index} is invalid: {e}")
    return steps


def load_steps_file(path: Union[str, Path]) -> List[StepDefinition]:
    """Read step definitions from a JSON file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise StepGenerationError(f"Cannot read steps file {path}: {e}")
    return parse_step_definitions(text)


class OpenAIStepGenerator(StepGenerator):
    """
    Generates steps with an OpenAI chat model.

    When a page inventory is supplied, the visible element texts are appended
    to the request so targets use the page's exact wording.
    """

    def __init__(
        self,
        client: Optional[OpenAIClient] = None,
        temperature: Optional[float] = None,
    ):
        settings = get_settings()
        self.client = client or OpenAIClient()
        self.temperature = (
            temperature if temperature is not None else settings.openai_temperature
        )
        self.system_prompt = STEP_GENERATOR_SYSTEM_PROMPT

    def build_user_message(
        self, prompt: str, url: str, inventory: Optional[PageInventory] = None
    ) -> str:
        message = STEP_GENERATOR_USER_TEMPLATE.format(url=url, prompt=prompt)
        if inventory is not None and not inventory.is_empty():
            message += PAGE_INVENTORY_TEMPLATE.format(
                url=url, inventory=inventory.describe()
            )
        return message

    async def generate_steps(
        self,
        prompt: str,
        url: str,
        inventory: Optional[PageInventory] = None,
    ) -> List[StepDefinition]:
        logger.info(
            "Generating test steps",
            extra={
                "prompt_length": len(prompt),
                "has_inventory": inventory is not None and not inventory.is_empty(),
            },
        )

        try:
            response = await self.client.call(
                messages=[
                    {
                        "role": "user",
                        "content": self.build_user_message(prompt, url, inventory),
                    }
                ],
                temperature=self.temperature,
                system_prompt=self.system_prompt,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise StepGenerationError(f"Step generation request failed: {e}", cause=e) from e

        steps = parse_step_definitions(response.get("content"))

        usage = response.get("usage", {})
        logger.info(
            "Test steps generated",
            extra={
                "num_steps": len(steps),
                "total_tokens": usage.get("total_tokens", 0),
            },
        )
        return steps


class StaticStepGenerator(StepGenerator):
    """Serves a fixed list of step definitions regardless of the prompt."""

    def __init__(self, steps: Sequence[Union[StepDefinition, dict]]):
        self.steps = [
            step if isinstance(step, StepDefinition) else StepDefinition.model_validate(step)
            for step in steps
        ]

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StaticStepGenerator":
        return cls(load_steps_file(path))

    async def generate_steps(
        self,
        prompt: str,
        url: str,
        inventory: Optional[PageInventory] = None,
    ) -> List[StepDefinition]:
        return list(self.steps)
