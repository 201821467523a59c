"""LM Studio and Ollama providers: request hooks, response parsing, end-to-end analysis."""

from __future__ import annotations

import json
import threading

import httpx
import pytest

from petfeedback.core.domain.exceptions import (
    LLMHTTPStatusError,
    LLMResponseFormatError,
    ProviderConfigError,
)
from petfeedback.core.domain.schemas import FeedbackType, PetMood, ProviderSettings
from petfeedback.infra.feedback_store import FeedbackStore
from petfeedback.infra.llm.http_client import HttpLlmProvider
from petfeedback.infra.llm.lmstudio_provider import LMStudioProvider, parse_openai_usage
from petfeedback.infra.llm.ollama_provider import OllamaProvider
from petfeedback.infra.llm.prompts import SYSTEM_PROMPT

from conftest import VALID_ANALYSIS, FakeStore


def _chat_completion(content: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 30, "total_tokens": 42},
    }


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── LM Studio hooks ──────────────────────────────────────────────────────────


class TestLMStudioHooks:
    def test_endpoint_appends_chat_completions(self, lmstudio_settings):
        provider = LMStudioProvider(lmstudio_settings, client=_mock_client(lambda r: httpx.Response(200)))
        assert provider.endpoint() == "http://lmstudio.test/v1/chat/completions"

    def test_endpoint_left_alone_when_already_complete(self):
        settings = ProviderSettings(
            provider="lmstudio", model="m", timeout_ms=1000, max_retries=1,
            lmstudio={"url": "http://host:1234/v1/chat/completions/"},
        )
        provider = LMStudioProvider(settings, client=_mock_client(lambda r: httpx.Response(200)))
        assert provider.endpoint() == "http://host:1234/v1/chat/completions"

    def test_no_auth_header_without_key(self, lmstudio_settings):
        provider = LMStudioProvider(lmstudio_settings, client=_mock_client(lambda r: httpx.Response(200)))
        assert "Authorization" not in provider.build_headers()

    def test_bearer_header_with_key(self):
        settings = ProviderSettings(
            provider="lmstudio", model="m", timeout_ms=1000, max_retries=1,
            lmstudio={"url": "http://host/v1", "api_key": "sk-local"},
        )
        provider = LMStudioProvider(settings, client=_mock_client(lambda r: httpx.Response(200)))
        assert provider.build_headers()["Authorization"] == "Bearer sk-local"

    def test_request_body(self, lmstudio_settings):
        provider = LMStudioProvider(lmstudio_settings, client=_mock_client(lambda r: httpx.Response(200)))
        body = provider.build_request_body("how did it go?")

        assert body["model"] == "openai/gpt-oss-120b"
        assert body["stream"] is False
        assert body["messages"] == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "how did it go?"},
        ]

    def test_block_model_overrides_top_level_model(self):
        settings = ProviderSettings(
            provider="lmstudio", model="top", timeout_ms=1000, max_retries=1,
            lmstudio={"url": "http://host/v1", "model": "qwen2.5-coder"},
        )
        provider = LMStudioProvider(settings, client=_mock_client(lambda r: httpx.Response(200)))
        assert provider.build_request_body("x")["model"] == "qwen2.5-coder"

    def test_empty_url_is_a_config_error(self):
        settings = ProviderSettings(
            provider="lmstudio", model="m", timeout_ms=1000, max_retries=1, lmstudio={"url": ""},
        )
        with pytest.raises(ProviderConfigError):
            LMStudioProvider(settings)

    def test_parse_response_reads_first_choice(self, lmstudio_settings):
        provider = LMStudioProvider(lmstudio_settings, client=_mock_client(lambda r: httpx.Response(200)))
        resp = provider.parse_response(_chat_completion("hello"))

        assert resp.content == "hello"
        assert resp.usage.total_tokens == 42

    def test_parse_response_rejects_missing_choices(self, lmstudio_settings):
        provider = LMStudioProvider(lmstudio_settings, client=_mock_client(lambda r: httpx.Response(200)))
        with pytest.raises(IndexError):
            provider.parse_response({"choices": []})


def test_parse_openai_usage_fills_total():
    usage = parse_openai_usage({"prompt_tokens": 3, "completion_tokens": 4})
    assert usage.total_tokens == 7
    assert parse_openai_usage(None) is None


# ── Ollama hooks ─────────────────────────────────────────────────────────────


@pytest.fixture
def ollama_settings() -> ProviderSettings:
    return ProviderSettings(
        provider="ollama", model="llama3", timeout_ms=1000, max_retries=1,
        ollama={"url": "http://ollama.test:11434/"},
    )


class TestOllamaHooks:
    def test_endpoint(self, ollama_settings):
        provider = OllamaProvider(ollama_settings, client=_mock_client(lambda r: httpx.Response(200)))
        assert provider.endpoint() == "http://ollama.test:11434/api/chat"

    def test_request_body_is_non_streaming_json(self, ollama_settings):
        provider = OllamaProvider(ollama_settings, client=_mock_client(lambda r: httpx.Response(200)))
        body = provider.build_request_body("prompt")

        assert body["stream"] is False
        assert body["format"] == "json"
        assert body["model"] == "llama3"
        assert body["messages"][-1] == {"role": "user", "content": "prompt"}

    def test_parse_chat_shape(self, ollama_settings):
        provider = OllamaProvider(ollama_settings, client=_mock_client(lambda r: httpx.Response(200)))
        resp = provider.parse_response({
            "message": {"role": "assistant", "content": "{}"},
            "prompt_eval_count": 10,
            "eval_count": 5,
        })

        assert resp.content == "{}"
        assert resp.usage.total_tokens == 15

    def test_parse_generate_shape(self, ollama_settings):
        provider = OllamaProvider(ollama_settings, client=_mock_client(lambda r: httpx.Response(200)))
        resp = provider.parse_response({"response": "text"})

        assert resp.content == "text"
        assert resp.usage is None

    def test_empty_reply_rejected(self, ollama_settings):
        provider = OllamaProvider(ollama_settings, client=_mock_client(lambda r: httpx.Response(200)))
        with pytest.raises(ValueError):
            provider.parse_response({"message": {"content": ""}})


# ── end-to-end through the template ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_lmstudio_analyze_exchange_records_observation(lmstudio_settings, fake_store):
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=_chat_completion(json.dumps(VALID_ANALYSIS)))

    provider = LMStudioProvider(lmstudio_settings, store=fake_store, client=_mock_client(handler))
    result = await provider.analyze_exchange(
        "fix the login bug",
        ["Edited auth.py"],
        ["earlier message"],
        session_id="s-1",
        workspace_id="/work/app",
    )

    assert result.compliance_score == 9
    assert result.feedback_type is FeedbackType.PRAISE
    assert result.pet_response.mood_change is PetMood.HAPPY
    assert "fix the login bug" in seen[0]["messages"][1]["content"]

    assert len(fake_store.records) == 1
    obs = fake_store.records[0]
    assert obs.provider == "lmstudio"
    assert obs.session_id == "s-1"
    assert obs.workspace_id == "/work/app"
    assert obs.thought == "Good assistant, good!"
    assert obs.mood == "happy"


@pytest.mark.asyncio
async def test_store_failure_does_not_fail_analysis(lmstudio_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_chat_completion(json.dumps(VALID_ANALYSIS)))

    provider = LMStudioProvider(lmstudio_settings, store=FakeStore(fail=True), client=_mock_client(handler))
    result = await provider.analyze_exchange("do it", [], [])

    assert result.summary == "Fixing the login bug"


@pytest.mark.asyncio
async def test_garbage_model_output_raises_format_error(lmstudio_settings, fake_store):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_chat_completion("I think it went fine!"))

    provider = LMStudioProvider(lmstudio_settings, store=fake_store, client=_mock_client(handler))
    with pytest.raises(LLMResponseFormatError):
        await provider.analyze_exchange("do it", [], [])
    assert fake_store.records == []


@pytest.mark.asyncio
async def test_client_error_propagates_without_recording(lmstudio_settings, fake_store):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"error": "model not found"})

    settings = lmstudio_settings.model_copy(update={"max_retries": 3})
    provider = LMStudioProvider(settings, store=fake_store, client=_mock_client(handler))
    with pytest.raises(LLMHTTPStatusError) as exc_info:
        await provider.analyze_exchange("do it", [], [])

    assert exc_info.value.status_code == 400
    assert len(calls) == 1
    assert fake_store.records == []


@pytest.mark.asyncio
async def test_ollama_analyze_user_message(ollama_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/chat"
        return httpx.Response(200, json={
            "message": {"content": '{"summary": "wants a bug fixed", "intent": "bugfix"}'},
        })

    provider = OllamaProvider(ollama_settings, client=_mock_client(handler))
    analysis = await provider.analyze_user_message("please fix the crash", [])

    assert analysis.summary == "wants a bug fixed"
    assert analysis.intent == "bugfix"


@pytest.mark.asyncio
async def test_injected_client_is_not_closed(lmstudio_settings):
    client = _mock_client(lambda r: httpx.Response(200))
    provider = LMStudioProvider(lmstudio_settings, client=client)
    await provider.aclose()

    assert not client.is_closed
    await client.aclose()


def test_http_provider_hooks_are_abstract(lmstudio_settings):
    with pytest.raises(TypeError):
        HttpLlmProvider(lmstudio_settings)


@pytest.mark.asyncio
async def test_observation_records_block_model():
    settings = ProviderSettings(
        provider="lmstudio", model="top", timeout_ms=1000, max_retries=1,
        lmstudio={"url": "http://host/v1", "model": "qwen2.5-coder"},
    )
    store = FakeStore()
    client = _mock_client(lambda r: httpx.Response(200, json=_chat_completion(json.dumps(VALID_ANALYSIS))))
    provider = LMStudioProvider(settings, store=store, client=client)

    await provider.analyze_exchange("do it", [], [])

    assert provider.model_name == "qwen2.5-coder"
    assert store.records[0].model == "qwen2.5-coder"
    await client.aclose()


class ThreadRecordingStore(FakeStore):
    def __init__(self) -> None:
        super().__init__()
        self.threads: list[int] = []

    def record(self, observation) -> None:
        self.threads.append(threading.get_ident())
        super().record(observation)


@pytest.mark.asyncio
async def test_store_write_runs_off_the_event_loop(lmstudio_settings):
    store = ThreadRecordingStore()
    client = _mock_client(lambda r: httpx.Response(200, json=_chat_completion(json.dumps(VALID_ANALYSIS))))
    provider = LMStudioProvider(lmstudio_settings, store=store, client=client)

    await provider.analyze_exchange("do it", [], [])

    assert len(store.records) == 1
    assert store.threads[0] != threading.get_ident()
    await client.aclose()


@pytest.mark.asyncio
async def test_aclose_closes_store_opened_from_persistence_path(lmstudio_settings, tmp_path, monkeypatch):
    closed: list[FeedbackStore] = []
    original_close = FeedbackStore.close

    def tracking_close(self):
        closed.append(self)
        original_close(self)

    monkeypatch.setattr(FeedbackStore, "close", tracking_close)
    settings = lmstudio_settings.model_copy(update={"persistence_path": str(tmp_path / "feedback.db")})
    client = _mock_client(lambda r: httpx.Response(200, json=_chat_completion(json.dumps(VALID_ANALYSIS))))
    provider = LMStudioProvider(settings, client=client)

    await provider.analyze_exchange("do it", [], [])
    assert provider.store.count() == 1
    await provider.aclose()

    assert closed == [provider.store]
    await client.aclose()


@pytest.mark.asyncio
async def test_aclose_leaves_injected_store_open(lmstudio_settings):
    class ClosableStore(FakeStore):
        closed = False

        def close(self) -> None:
            self.closed = True

    store = ClosableStore()
    provider = LMStudioProvider(lmstudio_settings, store=store, client=_mock_client(lambda r: httpx.Response(200)))
    await provider.aclose()

    assert not store.closed
