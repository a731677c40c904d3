"""Wrapper around the Anthropic Claude SDK."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from anthropic import Anthropic, APIError

from estatepress.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Outcome of one text-generation call.

    ``kind`` distinguishes a provider error (``api_error``) from a call that
    succeeded but returned nothing usable (``empty_response``).
    """

    success: bool
    text: str = ""
    error: str | None = None
    kind: str | None = None


class ClaudeClient:
    """Thin wrapper providing token tracking and a success/failure contract.

    Calls are never retried: every generation has a cost, so a failure goes
    straight back to the caller.
    """

    def __init__(self, settings: Settings) -> None:
        self._client = Anthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.generation_timeout,
            max_retries=0,
        )
        self._model = settings.model
        self._max_tokens = settings.max_tokens
        self._temperature = settings.temperature
        self._total_input_tokens = 0
        self._total_output_tokens = 0

    def generate(
        self,
        system: str,
        messages: list[dict],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a message to Claude and return the text response."""
        response = self._client.messages.create(
            model=self._model,
            max_tokens=max_tokens or self._max_tokens,
            temperature=temperature if temperature is not None else self._temperature,
            system=system,
            messages=messages,
        )
        self._total_input_tokens += response.usage.input_tokens
        self._total_output_tokens += response.usage.output_tokens
        if not response.content:
            return ""
        return response.content[0].text

    def complete(
        self,
        prompt: str,
        context: str = "",
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> GenerationResult:
        """Generate text for ``prompt`` with ``context`` as the system message.

        Never raises for provider failures; inspect ``success`` and ``kind``.
        """
        try:
            text = self.generate(
                system=context,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except APIError as exc:
            logger.warning("Text generation failed: %s", exc)
            return GenerationResult(success=False, error=str(exc), kind="api_error")

        if not text or not text.strip():
            return GenerationResult(
                success=False, error="Empty response from model", kind="empty_response"
            )
        return GenerationResult(success=True, text=text)

    @property
    def usage_summary(self) -> dict:
        return {
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
        }
