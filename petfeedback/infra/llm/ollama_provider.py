"""Ollama local server (/api/chat, non-streaming)."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from petfeedback.core.domain.schemas import LlmResponse, LlmUsage, OllamaSettings, ProviderSettings

from .base import ObservationSink
from .http_client import HttpLlmProvider
from .prompts import SYSTEM_PROMPT

NUM_PREDICT = 500
TEMPERATURE = 0.3


class OllamaProvider(HttpLlmProvider):

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        store: Optional[ObservationSink] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        block = settings.ollama or OllamaSettings()
        self._base_url = block.url.rstrip("/")
        super().__init__(settings, store=store, client=client, model_name=block.model)

    def endpoint(self) -> str:
        return f"{self._base_url}/api/chat"

    def build_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def build_request_body(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model_name,
            "stream": False,
            "format": "json",
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "options": {
                "temperature": TEMPERATURE,
                "num_predict": NUM_PREDICT,
            },
        }

    def parse_response(self, data: Any) -> LlmResponse:
        text = _extract_text(data)
        if not text:
            raise ValueError("no text content found in Ollama response")
        return LlmResponse(content=text, usage=_extract_usage(data))


def _extract_text(data: Any) -> str:
    """Handle both /api/chat and /api/generate response shapes."""
    if not isinstance(data, dict):
        return ""
    message = data.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str) and content:
            return content
    response = data.get("response")
    if isinstance(response, str):
        return response
    return ""


def _extract_usage(data: dict[str, Any]) -> Optional[LlmUsage]:
    if "prompt_eval_count" not in data and "eval_count" not in data:
        return None
    prompt = int(data.get("prompt_eval_count") or 0)
    completion = int(data.get("eval_count") or 0)
    return LlmUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)
