"""LM Studio local server (OpenAI-compatible chat completions)."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from petfeedback.core.domain.exceptions import ProviderConfigError
from petfeedback.core.domain.schemas import LlmResponse, LlmUsage, LMStudioSettings, ProviderSettings

from .base import ObservationSink
from .http_client import HttpLlmProvider
from .prompts import SYSTEM_PROMPT

MAX_TOKENS = 500
TEMPERATURE = 0.3


def parse_openai_usage(raw: Any) -> Optional[LlmUsage]:
    if not isinstance(raw, dict):
        return None
    prompt = int(raw.get("prompt_tokens") or 0)
    completion = int(raw.get("completion_tokens") or 0)
    total = int(raw.get("total_tokens") or prompt + completion)
    return LlmUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


class LMStudioProvider(HttpLlmProvider):

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        store: Optional[ObservationSink] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        block = settings.lmstudio or LMStudioSettings()
        if not block.url:
            raise ProviderConfigError(settings.provider, "LM Studio url is required")
        self._base_url = block.url.rstrip("/")
        self._api_key = block.api_key
        super().__init__(settings, store=store, client=client, model_name=block.model)

    def endpoint(self) -> str:
        if self._base_url.endswith("/chat/completions"):
            return self._base_url
        return f"{self._base_url}/chat/completions"

    def build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def build_request_body(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": TEMPERATURE,
            "max_tokens": MAX_TOKENS,
            "stream": False,
        }

    def parse_response(self, data: Any) -> LlmResponse:
        content = data["choices"][0]["message"]["content"]
        if not isinstance(content, str):
            raise ValueError("choices[0].message.content is not a string")
        return LlmResponse(content=content, usage=parse_openai_usage(data.get("usage")))
