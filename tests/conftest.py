import json

import pytest

from petfeedback.core.domain.schemas import Observation, ProviderSettings

_ENV_VARS = (
    "PET_LLM_PROVIDER",
    "PET_GROQ_API_KEY",
    "GROQ_API_KEY",
    "PET_GROQ_MODEL",
    "PET_GROQ_TIMEOUT",
    "PET_GROQ_MAX_RETRIES",
    "LM_STUDIO_ENABLED",
    "LM_STUDIO_URL",
    "LM_STUDIO_MODEL",
    "LM_STUDIO_API_KEY",
    "PET_LM_STUDIO_TIMEOUT",
    "PET_LM_STUDIO_MAX_RETRIES",
    "OLLAMA_ENABLED",
    "OLLAMA_URL",
    "OLLAMA_MODEL",
    "PET_OLLAMA_TIMEOUT",
    "PET_OLLAMA_MAX_RETRIES",
    "PET_FEEDBACK_ENABLED",
    "PET_FEEDBACK_DB_PATH",
    "PET_FEEDBACK_DB_MAX_SIZE",
    "PET_FEEDBACK_DEBUG",
    "PET_FEEDBACK_LOG_DIR",
    "LOG_LEVEL",
)

VALID_ANALYSIS = {
    "compliance_score": 9,
    "efficiency_score": 8,
    "feedback_type": "praise",
    "severity": "good",
    "funny_observation": "Wow, it only touched the file you asked about!",
    "summary": "Fixing the login bug",
    "violations": [],
    "pet_response": {
        "mood_change": "happy",
        "stat_changes": {"happiness": 5},
        "thought": "Good assistant, good!",
    },
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's shell config out of the tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)

    @property
    def total_ms(self) -> int:
        return round(sum(self.delays) * 1000)


class FakeStore:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.records: list[Observation] = []

    def record(self, observation: Observation) -> None:
        if self.fail:
            raise OSError("disk full")
        self.records.append(observation)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def valid_analysis_json() -> str:
    return json.dumps(VALID_ANALYSIS)


@pytest.fixture
def lmstudio_settings() -> ProviderSettings:
    return ProviderSettings(
        provider="lmstudio",
        model="openai/gpt-oss-120b",
        timeout_ms=1000,
        max_retries=1,
        lmstudio={"url": "http://lmstudio.test/v1"},
    )
