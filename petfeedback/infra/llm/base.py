"""LlmProvider -- core contract every analysis backend implements."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Protocol, Sequence

from petfeedback.core.domain.schemas import (
    AnalysisResult,
    LlmResponse,
    MessageAnalysis,
    Observation,
    ProviderSettings,
)
from petfeedback.infra.feedback_store import FeedbackStore

from .parsing import parse_analysis, parse_message_analysis
from .prompts import exchange_analysis_prompt, message_analysis_prompt
from .transport import call_with_retry

PROVIDER_LOGGER_PREFIX = "petfeedback.provider"
STORE_MAX_RECORDS = 50


class ObservationSink(Protocol):
    def record(self, observation: Observation) -> None:
        ...


class LlmProvider(ABC):
    """Base for all providers.

    Holds the settings and the optional observation store for its whole
    lifetime; keeps no other state between calls, so concurrent analyses on
    one instance are safe.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        store: Optional[ObservationSink] = None,
        model_name: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.model_name = model_name or settings.model
        self.timeout_ms = settings.timeout_ms
        self.max_retries = settings.max_retries
        self._logger = logging.getLogger(f"{PROVIDER_LOGGER_PREFIX}.{settings.provider}")
        self._owns_store = store is None
        self.store = store if store is not None else self._open_store(settings.persistence_path)

    @property
    def name(self) -> str:
        return self.settings.provider

    def _open_store(self, path: Optional[str]) -> Optional[ObservationSink]:
        if not path:
            return None
        try:
            store = FeedbackStore(path, STORE_MAX_RECORDS)
        except Exception as exc:
            self.log_error("Failed to initialize feedback store", exc)
            return None
        self.debug(f"Feedback store initialized at {path}")
        return store

    # --- remote primitive ---

    @abstractmethod
    async def call_model_with_timeout(self, prompt: str) -> LlmResponse:
        """Send *prompt* once, enforcing ``timeout_ms`` of wall-clock time."""

    async def _call_with_retry(self, prompt: str) -> LlmResponse:
        return await call_with_retry(
            lambda: self.call_model_with_timeout(prompt),
            provider=self.name,
            max_retries=self.max_retries,
        )

    async def _complete(self, prompt: str) -> LlmResponse:
        try:
            return await self._call_with_retry(prompt)
        except Exception as exc:
            self.log_error("LLM call failed", exc)
            raise

    # --- analysis operations ---

    async def analyze_user_message(self, message: str, session_history: Sequence[str]) -> MessageAnalysis:
        """Summarize *message* and label its intent. Raises on failure."""
        prompt = message_analysis_prompt(message, session_history)
        response = await self._complete(prompt)
        return parse_message_analysis(self.name, response.content)

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
        """Judge one request/actions exchange. Raises on failure.

        A successful analysis is recorded in the store; a store failure is
        logged and never turns into an analysis failure.
        """
        prompt = exchange_analysis_prompt(
            user_request=user_request,
            assistant_actions=assistant_actions,
            session_history=session_history,
            project_context=project_context,
            pet_state=pet_state,
        )
        response = await self._complete(prompt)
        result = parse_analysis(self.name, response.content)
        if response.usage is not None:
            self.debug(f"Token usage: {response.usage.total_tokens} total")

        await self._record(result, session_id=session_id, message_id=message_id, workspace_id=workspace_id)
        return result

    async def _record(
        self,
        result: AnalysisResult,
        *,
        session_id: Optional[str],
        message_id: Optional[str],
        workspace_id: Optional[str],
    ) -> None:
        if self.store is None:
            return
        mood = result.pet_response.mood_change
        observation = Observation(
            provider=self.name,
            model=self.model_name,
            session_id=session_id,
            message_id=message_id,
            workspace_id=workspace_id,
            summary=result.summary,
            thought=result.pet_response.thought or result.observation,
            mood=mood.value if mood is not None else None,
            compliance_score=result.compliance_score,
            efficiency_score=result.efficiency_score,
            feedback_type=result.feedback_type.value,
            severity=result.severity.value,
        )
        # blocking SQLite write, run on the default executor
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.store.record, observation)
        except Exception as exc:
            self.log_error("Failed to record observation", exc)

    async def aclose(self) -> None:
        """Close a store this provider opened itself. Subclasses add their clients."""
        close = getattr(self.store, "close", None)
        if self._owns_store and close is not None:
            close()

    # --- logging hooks (never alter control flow) ---

    def debug(self, message: str) -> None:
        try:
            self._logger.debug("[%sProvider] %s", self.name, message)
        except Exception:
            pass

    def log_error(self, message: str, exc: BaseException) -> None:
        try:
            self._logger.error("[%sProvider] %s - %s", self.name, message, exc, exc_info=exc)
        except Exception:
            pass
