"""Provider factory and selector -- resolve configuration to a concrete provider."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from petfeedback.core.domain.exceptions import ProviderNotImplementedError, UnknownProviderError
from petfeedback.core.domain.schemas import (
    LOCAL_PROVIDERS,
    ProviderKind,
    ProviderPreference,
    ProviderSettings,
)

from .base import LlmProvider, ObservationSink
from .groq_provider import GroqProvider
from .lmstudio_provider import LMStudioProvider
from .ollama_provider import OllamaProvider


def _parse_kind(value: object) -> ProviderKind:
    raw = value.value if isinstance(value, ProviderKind) else value
    if not isinstance(raw, str):
        raise UnknownProviderError(value)
    try:
        return ProviderKind(raw.strip().lower())
    except ValueError:
        raise UnknownProviderError(value) from None


def create_provider(
    settings: ProviderSettings,
    *,
    store: Optional[ObservationSink] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    sdk_client: Any = None,
) -> LlmProvider:
    """Instantiate the provider named by ``settings.provider``.

    Raises UnknownProviderError for values outside the closed set and
    ProviderNotImplementedError for known kinds without a backend yet.
    """
    kind = _parse_kind(settings.provider)
    if settings.provider != kind.value:
        settings = settings.model_copy(update={"provider": kind.value})

    match kind:
        case ProviderKind.GROQ:
            return GroqProvider(settings, store=store, client=sdk_client)
        case ProviderKind.LMSTUDIO:
            return LMStudioProvider(settings, store=store, client=http_client)
        case ProviderKind.OLLAMA:
            return OllamaProvider(settings, store=store, client=http_client)
        case ProviderKind.OPENAI:
            raise ProviderNotImplementedError(kind.value)
        case _:
            raise UnknownProviderError(settings.provider)


def select_provider(
    preferred: str,
    local_enabled: bool,
    cloud_key_present: bool,
    *,
    local_kind: ProviderKind = ProviderKind.LMSTUDIO,
) -> Optional[ProviderKind]:
    """Decide which backend should be active, or None for offline mode.

    An explicit preference is honoured only when its prerequisite holds;
    it is never redirected to a different backend. ``auto`` prefers the
    local backend, then the cloud one.
    """
    if local_kind not in LOCAL_PROVIDERS:
        raise ValueError(f"{local_kind.value} is not a local provider")

    choice = (preferred or "").strip().lower()

    if choice == ProviderPreference.GROQ.value:
        return ProviderKind.GROQ if cloud_key_present else None

    if choice == local_kind.value:
        return local_kind if local_enabled else None

    if choice == ProviderPreference.AUTO.value:
        if local_enabled:
            return local_kind
        if cloud_key_present:
            return ProviderKind.GROQ

    return None
