"""Shared request/response HTTP plumbing for local and REST backends.

A backend supplies four hooks (endpoint, headers, body, response parsing);
the timeout race and the retry loop live here and work with any object
that provides them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import abstractmethod
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx

from petfeedback.core.domain.exceptions import (
    LLMConnectionError,
    LLMHTTPStatusError,
    LLMResponseFormatError,
    LLMTimeoutError,
)
from petfeedback.core.domain.schemas import LlmResponse, ProviderSettings

from .base import LlmProvider, ObservationSink
from .transport import call_with_retry

logger = logging.getLogger(__name__)

_UNREADABLE_BODY = "Unable to read error body"
_MAX_ERROR_BODY_CHARS = 500


class HttpHooks(Protocol):
    def endpoint(self) -> str:
        ...

    def build_headers(self) -> dict[str, str]:
        ...

    def build_request_body(self, prompt: str) -> dict[str, Any]:
        ...

    def parse_response(self, data: Any) -> LlmResponse:
        ...


def _error_body(response: httpx.Response) -> str:
    try:
        text = response.text
    except Exception:
        logger.debug("could not decode error body (status %d)", response.status_code, exc_info=True)
        return _UNREADABLE_BODY
    return text[:_MAX_ERROR_BODY_CHARS]


async def post_with_timeout(
    hooks: HttpHooks,
    prompt: str,
    *,
    provider: str,
    timeout_ms: int,
    client: httpx.AsyncClient,
) -> LlmResponse:
    """One POST raced against ``timeout_ms``; the request is cancelled on expiry."""
    endpoint = hooks.endpoint()
    headers = hooks.build_headers()
    body = hooks.build_request_body(prompt)

    logger.debug("%s: POST %s (timeout %dms)", provider, endpoint, timeout_ms)
    try:
        response = await asyncio.wait_for(
            client.post(endpoint, headers=headers, json=body),
            timeout=timeout_ms / 1000,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise LLMTimeoutError(provider, timeout_ms) from exc
    except httpx.TransportError as exc:
        raise LLMConnectionError(provider, f"{type(exc).__name__}: {exc}") from exc

    if not response.is_success:
        raise LLMHTTPStatusError(provider, response.status_code, _error_body(response))

    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise LLMResponseFormatError(provider, f"malformed JSON body: {exc}") from exc

    try:
        return hooks.parse_response(data)
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise LLMResponseFormatError(provider, f"unexpected response shape: {exc}") from exc


async def post_with_retry(
    hooks: HttpHooks,
    prompt: str,
    *,
    provider: str,
    timeout_ms: int,
    max_retries: int,
    client: httpx.AsyncClient,
    sleep: Optional[Callable[[float], Awaitable[object]]] = None,
) -> LlmResponse:
    return await call_with_retry(
        lambda: post_with_timeout(hooks, prompt, provider=provider, timeout_ms=timeout_ms, client=client),
        provider=provider,
        max_retries=max_retries,
        sleep=sleep,
    )


class HttpLlmProvider(LlmProvider):
    """Provider reachable over plain JSON-over-HTTP.

    Subclasses implement the four HttpHooks methods; this class owns the
    ``httpx.AsyncClient`` (unless one is injected) and routes every call
    through ``post_with_timeout`` / ``post_with_retry``.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        store: Optional[ObservationSink] = None,
        client: Optional[httpx.AsyncClient] = None,
        model_name: Optional[str] = None,
    ) -> None:
        super().__init__(settings, store=store, model_name=model_name)
        self._owns_client = client is None
        # timeouts are enforced by post_with_timeout, not by httpx
        self._client = client if client is not None else httpx.AsyncClient(timeout=None)

    @abstractmethod
    def endpoint(self) -> str:
        ...

    @abstractmethod
    def build_headers(self) -> dict[str, str]:
        ...

    @abstractmethod
    def build_request_body(self, prompt: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def parse_response(self, data: Any) -> LlmResponse:
        ...

    async def call_model_with_timeout(self, prompt: str) -> LlmResponse:
        return await post_with_timeout(
            self, prompt, provider=self.name, timeout_ms=self.timeout_ms, client=self._client,
        )

    async def _call_with_retry(self, prompt: str) -> LlmResponse:
        self.debug(f"Calling HTTP API at {self.endpoint()}")
        self.debug(f"Timeout: {self.timeout_ms}ms, Max retries: {self.max_retries}")
        response = await post_with_retry(
            self,
            prompt,
            provider=self.name,
            timeout_ms=self.timeout_ms,
            max_retries=self.max_retries,
            client=self._client,
        )
        self.debug("HTTP API response received")
        return response

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
        await super().aclose()
