"""Completion service client (Groq chat completions)."""

import logging
from typing import Optional, Protocol

import groq

from classia.core.config import settings
from classia.core.errors import ProviderError
from classia.features.generation.prompts import SYSTEM_PROMPT


logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    def complete(self, prompt: str) -> str:
        """Return the raw completion text for `prompt`. Raises ProviderError."""
        ...


class GroqCompletionClient:
    """One JSON-mode chat completion per call, bounded by a timeout, never retried."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or settings.GROQ_API_KEY
        if not self.api_key:
            raise ProviderError("GROQ_API_KEY not configured")
        self.model = model or settings.COMPLETION_MODEL
        self.temperature = settings.COMPLETION_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.COMPLETION_MAX_TOKENS
        self.timeout = timeout or settings.COMPLETION_TIMEOUT_SECONDS
        self._client = groq.Groq(api_key=self.api_key, timeout=self.timeout, max_retries=0)

    def complete(self, prompt: str) -> str:
        try:
            response = self._client.chat.completions.create(
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except groq.APIError as exc:
            logger.error(
                "[generation] completion request failed",
                extra={"model": self.model, "error": type(exc).__name__},
            )
            raise ProviderError(f"Completion service error: {type(exc).__name__}") from exc

        if not response.choices:
            raise ProviderError("Completion service returned no choices")
        return response.choices[0].message.content or ""
