"""
Chat completions client used for step generation.

Step generation is a single request/response exchange: a system prompt, one
user message describing the task and page, and a JSON document back. The
client returns the decoded content together with token usage so callers can
log cost per run.
"""

import json
import time
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from qualitypilot.config.settings import get_settings
from qualitypilot.monitoring.logger import get_logger, log_performance_metric

USAGE_FIELDS = ("prompt_tokens", "completion_tokens", "total_tokens")


def _usage_of(response: Any) -> Dict[str, int]:
    usage = getattr(response, "usage", None)
    counts = {}
    for field in USAGE_FIELDS:
        value = getattr(usage, field, None) if usage is not None else None
        counts[field] = int(value) if isinstance(value, (int, float)) else 0
    return counts


def _wants_json(response_format: Optional[Dict[str, Any]]) -> bool:
    return bool(response_format) and response_format.get("type") == "json_object"


class OpenAIClient:
    """Async wrapper around ``chat.completions.create``."""

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        max_retries: Optional[int] = None,
        request_timeout: Optional[float] = None,
    ) -> None:
        """
        Args:
            model: Chat model name (defaults to settings)
            api_key: API key (defaults to OPENAI_API_KEY via settings)
            max_retries: Retries handled by the openai SDK on transient errors
            request_timeout: Per-request timeout in seconds

        Raises:
            ValueError: No API key is configured
        """
        settings = get_settings()
        self.model = model or settings.openai_model
        self.api_key = api_key or settings.openai_api_key
        if not self.api_key:
            raise ValueError(
                "OpenAI API key not provided. Set OPENAI_API_KEY environment variable."
            )

        self.max_retries = (
            settings.openai_max_retries if max_retries is None else max_retries
        )
        self.request_timeout = request_timeout or float(
            settings.openai_request_timeout_seconds
        )
        self.logger = get_logger("models.openai_client")
        self.client = AsyncOpenAI(api_key=self.api_key, max_retries=self.max_retries)

    async def call(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Send one chat completion request.

        With ``response_format={"type": "json_object"}`` the content is
        decoded; content that is not valid JSON is returned as text so the
        caller can still strip fences or padding.

        Returns:
            Dict with ``content``, ``usage`` (prompt/completion/total token
            counts), ``model`` and ``finish_reason``

        Raises:
            openai.APIError: The request failed after the SDK's retries
        """
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": (
                [{"role": "system", "content": system_prompt}] if system_prompt else []
            ) + list(messages),
            "temperature": temperature,
        }
        if max_tokens:
            request["max_completion_tokens"] = max_tokens
        if response_format:
            request["response_format"] = response_format

        started = time.monotonic()
        try:
            response = await self.client.chat.completions.create(
                timeout=self.request_timeout, **request
            )
        except openai.APIError as exc:
            self.logger.error(
                "Chat completion request failed",
                extra={"model": self.model, "error": str(exc)},
            )
            raise

        choice = response.choices[0]
        usage = _usage_of(response)
        log_performance_metric(
            "chat_completion",
            (time.monotonic() - started) * 1000,
            context={"model": self.model, **usage},
        )
        return {
            "content": self._decode(choice.message.content, response_format),
            "usage": usage,
            "model": response.model,
            "finish_reason": choice.finish_reason,
        }

    def _decode(self, content: Optional[str], response_format: Optional[Dict[str, Any]]) -> Any:
        if not _wants_json(response_format):
            return content
        try:
            return json.loads(content)
        except (json.JSONDecodeError, TypeError):
            self.logger.warning(
                "Response is not valid JSON; returning raw text",
                extra={"model": self.model, "length": len(content or "")},
            )
            return content
