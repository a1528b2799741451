"""Step generators for QualityPilot."""

from qualitypilot.agents.step_generator import (
    OpenAIStepGenerator,
    StaticStepGenerator,
    load_steps_file,
    parse_step_definitions,
)

__all__ = [
    "OpenAIStepGenerator",
    "StaticStepGenerator",
    "load_steps_file",
    "parse_step_definitions",
]
