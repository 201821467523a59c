"""Pydantic v2 domain models -- no IO deps."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- enums ---

class ProviderKind(str, Enum):
    GROQ = "groq"
    LMSTUDIO = "lmstudio"
    OLLAMA = "ollama"
    OPENAI = "openai"


class ProviderPreference(str, Enum):
    AUTO = "auto"
    GROQ = "groq"
    LMSTUDIO = "lmstudio"
    OLLAMA = "ollama"


LOCAL_PROVIDERS: frozenset[ProviderKind] = frozenset({ProviderKind.LMSTUDIO, ProviderKind.OLLAMA})


class FeedbackType(str, Enum):
    NONE = "none"
    PRAISE = "praise"
    VIOLATION = "violation"
    INEFFICIENCY = "inefficiency"
    OVERREACH = "overreach"
    QUESTION = "question"


class Severity(str, Enum):
    GOOD = "good"
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


class PetMood(str, Enum):
    HAPPY = "happy"
    CONTENT = "content"
    CURIOUS = "curious"
    EXCITED = "excited"
    CONCERNED = "concerned"
    ANNOYED = "annoyed"
    ANGRY = "angry"
    FURIOUS = "furious"


# --- provider settings ---

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class GroqSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = None
    model: Optional[str] = None
    base_url: str = GROQ_BASE_URL


class LMStudioSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str = "http://localhost:1234/v1"
    model: Optional[str] = None
    api_key: Optional[str] = None


class OllamaSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str = "http://localhost:11434"
    model: Optional[str] = None


class OpenAISettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_key: str
    model: Optional[str] = None
    organization: Optional[str] = None


class ProviderSettings(BaseModel):
    """Immutable per-process provider configuration.

    ``provider`` is a plain string; unrecognized values are rejected by the
    factory, not at construction time.
    Only the nested block matching ``provider`` is ever consulted.
    """

    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    timeout_ms: int = Field(gt=0)
    max_retries: int = Field(ge=0)
    persistence_path: Optional[str] = None

    groq: Optional[GroqSettings] = None
    lmstudio: Optional[LMStudioSettings] = None
    ollama: Optional[OllamaSettings] = None
    openai: Optional[OpenAISettings] = None


# --- remote call result ---

class LlmUsage(BaseModel):
    prompt_tokens: int = Field(ge=0, default=0)
    completion_tokens: int = Field(ge=0, default=0)
    total_tokens: int = Field(ge=0, default=0)


class LlmResponse(BaseModel):
    content: str
    usage: Optional[LlmUsage] = None


# --- analysis output ---

class Violation(BaseModel):
    type: str
    description: str
    severity: Severity = Severity.MINOR


class PetResponse(BaseModel):
    mood_change: Optional[PetMood] = None
    stat_changes: dict[str, int] = Field(default_factory=dict)
    thought: Optional[str] = None


class AnalysisResult(BaseModel):
    """Structured judgement of one user/assistant exchange."""

    model_config = ConfigDict(populate_by_name=True)

    compliance_score: int = Field(ge=0, le=10)
    efficiency_score: int = Field(ge=0, le=10)
    feedback_type: FeedbackType
    severity: Severity
    observation: str = Field(alias="funny_observation")
    summary: str
    violations: list[Violation] = Field(default_factory=list)
    pet_response: PetResponse = Field(default_factory=PetResponse)


class MessageAnalysis(BaseModel):
    summary: str
    intent: str


# --- persistence ---

class Observation(BaseModel):
    """One completed analysis, as handed to the feedback store."""

    provider: str
    model: str
    session_id: Optional[str] = None
    message_id: Optional[str] = None
    workspace_id: Optional[str] = None
    summary: str
    thought: Optional[str] = None
    mood: Optional[str] = None
    compliance_score: int
    efficiency_score: int
    feedback_type: str
    severity: str
    created_at: datetime = Field(default_factory=_utcnow)
