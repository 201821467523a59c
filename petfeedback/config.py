"""App settings -- all config from env vars via pydantic-settings."""

import logging
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from petfeedback.core.domain.exceptions import NoProviderAvailableError
from petfeedback.core.domain.schemas import (
    GroqSettings,
    LMStudioSettings,
    OllamaSettings,
    ProviderKind,
    ProviderPreference,
    ProviderSettings,
)
from petfeedback.infra.llm.factory import select_provider

_PROJECT_ROOT = Path(__file__).parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

DEFAULT_GROQ_MODEL = "openai/gpt-oss-20b"
DEFAULT_LMSTUDIO_MODEL = "openai/gpt-oss-120b"
DEFAULT_OLLAMA_MODEL = "llama3"
DEFAULT_DB_PATH = "~/.claude/pets/feedback.db"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    llm_provider: str = Field(
        default=ProviderPreference.AUTO.value,
        validation_alias="PET_LLM_PROVIDER",
        description="auto | groq | lmstudio | ollama",
    )

    # --- groq (cloud) ---
    groq_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("PET_GROQ_API_KEY", "GROQ_API_KEY"),
    )
    groq_model: str = Field(default=DEFAULT_GROQ_MODEL, validation_alias="PET_GROQ_MODEL")
    groq_timeout_ms: int = Field(default=2000, gt=0, validation_alias="PET_GROQ_TIMEOUT")
    groq_max_retries: int = Field(default=2, ge=0, validation_alias="PET_GROQ_MAX_RETRIES")

    # --- lm studio (local) ---
    lmstudio_enabled: bool = Field(default=False, validation_alias="LM_STUDIO_ENABLED")
    lmstudio_url: str = Field(default="http://localhost:1234/v1", validation_alias="LM_STUDIO_URL")
    lmstudio_model: str = Field(default=DEFAULT_LMSTUDIO_MODEL, validation_alias="LM_STUDIO_MODEL")
    lmstudio_api_key: Optional[str] = Field(default=None, validation_alias="LM_STUDIO_API_KEY")
    lmstudio_timeout_ms: int = Field(default=5000, gt=0, validation_alias="PET_LM_STUDIO_TIMEOUT")
    lmstudio_max_retries: int = Field(default=1, ge=0, validation_alias="PET_LM_STUDIO_MAX_RETRIES")

    # --- ollama (local) ---
    ollama_enabled: bool = Field(default=False, validation_alias="OLLAMA_ENABLED")
    ollama_url: str = Field(default="http://localhost:11434", validation_alias="OLLAMA_URL")
    ollama_model: str = Field(default=DEFAULT_OLLAMA_MODEL, validation_alias="OLLAMA_MODEL")
    ollama_timeout_ms: int = Field(default=5000, gt=0, validation_alias="PET_OLLAMA_TIMEOUT")
    ollama_max_retries: int = Field(default=1, ge=0, validation_alias="PET_OLLAMA_MAX_RETRIES")

    # --- feedback store ---
    feedback_enabled: bool = Field(default=False, validation_alias="PET_FEEDBACK_ENABLED")
    feedback_db_path: str = Field(default=DEFAULT_DB_PATH, validation_alias="PET_FEEDBACK_DB_PATH")
    feedback_db_max_size: int = Field(default=50, ge=1, validation_alias="PET_FEEDBACK_DB_MAX_SIZE")

    # --- logging ---
    feedback_debug: bool = Field(default=False, validation_alias="PET_FEEDBACK_DEBUG")
    feedback_log_dir: Optional[str] = Field(default=None, validation_alias="PET_FEEDBACK_LOG_DIR")
    log_level: str = Field(default="WARNING", validation_alias="LOG_LEVEL")

    _LOG_LEVEL_MAP: dict[str, int] = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    @property
    def log_level_int(self) -> int:
        return self._LOG_LEVEL_MAP.get(self.log_level.upper(), logging.WARNING)

    @property
    def has_groq_key(self) -> bool:
        return bool(self.groq_api_key and self.groq_api_key.strip())

    def local_backend(self) -> tuple[ProviderKind, bool]:
        """Which local backend the selector should consider, and whether it is on."""
        preferred = self.llm_provider.strip().lower()
        if preferred == ProviderKind.OLLAMA.value:
            return ProviderKind.OLLAMA, self.ollama_enabled
        if preferred == ProviderPreference.AUTO.value and not self.lmstudio_enabled and self.ollama_enabled:
            return ProviderKind.OLLAMA, True
        return ProviderKind.LMSTUDIO, self.lmstudio_enabled


def selected_provider(cfg: Settings) -> Optional[ProviderKind]:
    local_kind, local_enabled = cfg.local_backend()
    return select_provider(
        cfg.llm_provider,
        local_enabled,
        cfg.has_groq_key,
        local_kind=local_kind,
    )


def build_provider_settings(cfg: Settings) -> ProviderSettings:
    """Resolve Settings into the value handed to the factory.

    Raises NoProviderAvailableError when the selector returns nothing.
    """
    kind = selected_provider(cfg)
    if kind is None:
        raise NoProviderAvailableError(cfg.llm_provider)

    persistence_path = cfg.feedback_db_path if cfg.feedback_enabled else None

    if kind is ProviderKind.GROQ:
        return ProviderSettings(
            provider=kind.value,
            model=cfg.groq_model,
            timeout_ms=cfg.groq_timeout_ms,
            max_retries=cfg.groq_max_retries,
            persistence_path=persistence_path,
            groq=GroqSettings(api_key=cfg.groq_api_key, model=cfg.groq_model),
        )
    if kind is ProviderKind.OLLAMA:
        return ProviderSettings(
            provider=kind.value,
            model=cfg.ollama_model,
            timeout_ms=cfg.ollama_timeout_ms,
            max_retries=cfg.ollama_max_retries,
            persistence_path=persistence_path,
            ollama=OllamaSettings(url=cfg.ollama_url, model=cfg.ollama_model),
        )
    return ProviderSettings(
        provider=kind.value,
        model=cfg.lmstudio_model,
        timeout_ms=cfg.lmstudio_timeout_ms,
        max_retries=cfg.lmstudio_max_retries,
        persistence_path=persistence_path,
        lmstudio=LMStudioSettings(
            url=cfg.lmstudio_url, model=cfg.lmstudio_model, api_key=cfg.lmstudio_api_key,
        ),
    )
