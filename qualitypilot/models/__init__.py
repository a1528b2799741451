"""Model clients for QualityPilot."""

from qualitypilot.models.openai_client import OpenAIClient

__all__ = ["OpenAIClient"]
