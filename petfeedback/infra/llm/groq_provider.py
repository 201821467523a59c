"""Groq hosted inference via the OpenAI SDK (Groq speaks the same API)."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from petfeedback.core.domain.exceptions import (
    LLMConnectionError,
    LLMHTTPStatusError,
    LLMResponseFormatError,
    LLMTimeoutError,
    ProviderConfigError,
)
from petfeedback.core.domain.schemas import GroqSettings, LlmResponse, LlmUsage, ProviderSettings

from .base import LlmProvider, ObservationSink
from .prompts import SYSTEM_PROMPT

MAX_TOKENS = 500
TEMPERATURE = 0.3


class GroqProvider(LlmProvider):
    """SDK-backed provider; does not go through the HTTP hooks.

    SDK failures are translated into the same exception types the HTTP
    path raises so the transport policy classifies them identically.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        store: Optional[ObservationSink] = None,
        client: Any = None,
    ) -> None:
        block = settings.groq or GroqSettings()
        if client is None and not block.api_key:
            raise ProviderConfigError(settings.provider, "Groq API key is required")
        # retries belong to the transport policy, not the SDK
        self._client = client if client is not None else AsyncOpenAI(
            api_key=block.api_key, base_url=block.base_url, max_retries=0,
        )
        super().__init__(settings, store=store, model_name=block.model)

    async def call_model_with_timeout(self, prompt: str) -> LlmResponse:
        self.debug(f"Calling Groq model {self.model_name} (timeout {self.timeout_ms}ms)")
        try:
            resp = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self.model_name,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=TEMPERATURE,
                    max_tokens=MAX_TOKENS,
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, APITimeoutError) as exc:
            raise LLMTimeoutError(self.name, self.timeout_ms) from exc
        except APIStatusError as exc:
            raise LLMHTTPStatusError(self.name, exc.status_code, getattr(exc, "message", str(exc))) from exc
        except APIConnectionError as exc:
            raise LLMConnectionError(self.name, str(exc)) from exc

        try:
            content = resp.choices[0].message.content or ""
        except (AttributeError, IndexError) as exc:
            raise LLMResponseFormatError(self.name, f"unexpected completion shape: {exc}") from exc

        return LlmResponse(content=content, usage=self._usage(resp.usage))

    @staticmethod
    def _usage(usage: Any) -> Optional[LlmUsage]:
        if usage is None:
            return None
        return LlmUsage(
            prompt_tokens=usage.prompt_tokens or 0,
            completion_tokens=usage.completion_tokens or 0,
            total_tokens=usage.total_tokens or 0,
        )

    async def aclose(self) -> None:
        await self._client.close()
        await super().aclose()
