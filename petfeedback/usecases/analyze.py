"""Analysis usecase -- pick a provider, run it, fall back when it is unavailable."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

from petfeedback.config import Settings, build_provider_settings
from petfeedback.core.domain.defaults import default_analysis, default_message_analysis
from petfeedback.core.domain.exceptions import NoProviderAvailableError, PetFeedbackError
from petfeedback.core.domain.schemas import AnalysisResult, MessageAnalysis, ProviderSettings
from petfeedback.infra.feedback_store import FeedbackStore
from petfeedback.infra.llm.base import LlmProvider, ObservationSink
from petfeedback.infra.llm.factory import create_provider

logger = logging.getLogger(__name__)

ProviderBuilder = Callable[[ProviderSettings, Optional[ObservationSink]], LlmProvider]


def _default_builder(settings: ProviderSettings, store: Optional[ObservationSink]) -> LlmProvider:
    return create_provider(settings, store=store)


class FeedbackAnalyzer:
    """Caller-facing entry point: always returns a structurally valid result.

    The provider is built lazily on first use and reused afterwards; a
    configuration failure is remembered so it is logged only once.
    """

    def __init__(
        self,
        cfg: Settings,
        *,
        builder: ProviderBuilder = _default_builder,
        store: Optional[ObservationSink] = None,
    ) -> None:
        self._cfg = cfg
        self._builder = builder
        self._store = store
        self._opened_store: Optional[FeedbackStore] = None
        self._provider: Optional[LlmProvider] = None
        self._unavailable: Optional[PetFeedbackError] = None

    @property
    def provider(self) -> Optional[LlmProvider]:
        return self._provider

    def _open_store(self, settings: ProviderSettings) -> Optional[ObservationSink]:
        if self._store is not None or not settings.persistence_path:
            return self._store
        try:
            self._opened_store = FeedbackStore(settings.persistence_path, self._cfg.feedback_db_max_size)
            self._store = self._opened_store
        except Exception as exc:
            logger.error("Failed to open feedback store at %s: %s", settings.persistence_path, exc)
        return self._store

    def _get_provider(self) -> Optional[LlmProvider]:
        if self._provider is not None or self._unavailable is not None:
            return self._provider
        try:
            settings = build_provider_settings(self._cfg)
            self._provider = self._builder(settings, self._open_store(settings))
        except NoProviderAvailableError as exc:
            logger.info("LLM analysis disabled: %s", exc)
            self._unavailable = exc
        except PetFeedbackError as exc:
            logger.error("LLM provider construction failed: %s", exc)
            self._unavailable = exc
        return self._provider

    async def analyze_exchange(
        self,
        user_request: str,
        assistant_actions: Sequence[str],
        session_history: Sequence[str],
        project_context: Optional[str] = None,
        pet_state: Any = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
    ) -> AnalysisResult:
        provider = self._get_provider()
        if provider is None:
            return default_analysis()
        try:
            return await provider.analyze_exchange(
                user_request,
                assistant_actions,
                session_history,
                project_context=project_context,
                pet_state=pet_state,
                session_id=session_id,
                message_id=message_id,
                workspace_id=workspace_id,
            )
        except PetFeedbackError as exc:
            logger.warning("Exchange analysis failed, using default analysis: %s", exc)
            return default_analysis()

    async def analyze_user_message(self, message: str, session_history: Sequence[str]) -> MessageAnalysis:
        provider = self._get_provider()
        if provider is None:
            return default_message_analysis(message)
        try:
            return await provider.analyze_user_message(message, session_history)
        except PetFeedbackError as exc:
            logger.warning("Message analysis failed, using default: %s", exc)
            return default_message_analysis(message)

    async def aclose(self) -> None:
        if self._provider is not None:
            await self._provider.aclose()
        if self._opened_store is not None:
            self._opened_store.close()
            self._opened_store = None
