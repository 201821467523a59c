"""Preflight checks for the configured LLM backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from petfeedback.config import Settings, build_provider_settings
from petfeedback.core.domain.exceptions import PetFeedbackError
from petfeedback.core.domain.schemas import ProviderKind
from petfeedback.infra.llm.factory import create_provider

logger = logging.getLogger(__name__)

# Timeout for the model-listing probe (seconds)
PROBE_TIMEOUT = 5
PING_PROMPT = 'Respond with exactly one word: "success"'


@dataclass
class CheckResult:
    name: str
    passed: bool
    details: str = ""
    error: Optional[str] = None


def models_url(kind: ProviderKind, base_url: str) -> str:
    base = base_url.rstrip("/")
    if kind is ProviderKind.OLLAMA:
        return f"{base}/api/tags"
    if base.endswith("/chat/completions"):
        base = base[: -len("/chat/completions")]
    return f"{base}/models"


def _model_ids(kind: ProviderKind, data: Any) -> list[str]:
    if not isinstance(data, dict):
        return []
    if kind is ProviderKind.OLLAMA:
        return [m.get("name", "") for m in data.get("models", []) if isinstance(m, dict)]
    return [m.get("id", "") for m in data.get("data", []) if isinstance(m, dict)]


def _model_listed(kind: ProviderKind, model: str, ids: list[str]) -> bool:
    if model in ids:
        return True
    if kind is not ProviderKind.OLLAMA:
        return False
    # an untagged ollama name resolves to its ":latest" tag
    return ":" not in model and f"{model}:latest" in ids


async def probe_models(
    kind: ProviderKind,
    base_url: str,
    model: str,
    *,
    client: httpx.AsyncClient,
) -> list[CheckResult]:
    """Reachability of the local server and presence of *model* in its list."""
    url = models_url(kind, base_url)
    try:
        resp = await client.get(url, timeout=PROBE_TIMEOUT)
    except httpx.TimeoutException:
        return [CheckResult("Connection", False, "backend may not be running", f"timeout ({PROBE_TIMEOUT}s)")]
    except httpx.ConnectError as exc:
        return [CheckResult("Connection", False, "backend is not running or port is closed", f"refused: {exc}")]
    except httpx.TransportError as exc:
        return [CheckResult("Connection", False, url, str(exc))]

    if not resp.is_success:
        return [CheckResult("Connection", False, "server responded with error status", f"HTTP {resp.status_code}")]

    try:
        ids = _model_ids(kind, resp.json())
    except ValueError as exc:
        return [CheckResult("Connection", False, url, f"malformed model list: {exc}")]

    results = [CheckResult("Connection", True, f"connected, {len(ids)} models listed")]
    if _model_listed(kind, model, ids):
        results.append(CheckResult("Configured model", True, f'"{model}" is available'))
    else:
        results.append(CheckResult(
            "Configured model", False,
            f"available: {', '.join(ids) or 'none'}", f'"{model}" not found',
        ))
    return results


async def run_checks(cfg: Settings, *, client: Optional[httpx.AsyncClient] = None) -> list[CheckResult]:
    results: list[CheckResult] = []
    try:
        settings = build_provider_settings(cfg)
    except PetFeedbackError as exc:
        return [CheckResult("Provider selection", False, f"preference={cfg.llm_provider}", str(exc))]
    results.append(CheckResult("Provider selection", True, f"{settings.provider} ({settings.model})"))

    kind = ProviderKind(settings.provider)
    owns_client = client is None
    http = client if client is not None else httpx.AsyncClient()
    try:
        if kind is ProviderKind.LMSTUDIO and settings.lmstudio is not None:
            results.extend(await probe_models(kind, settings.lmstudio.url, settings.model, client=http))
        elif kind is ProviderKind.OLLAMA and settings.ollama is not None:
            results.extend(await probe_models(kind, settings.ollama.url, settings.model, client=http))

        if not all(r.passed for r in results):
            results.append(CheckResult("Completion", False, "fix the checks above first", "not attempted"))
            return results

        provider = None
        try:
            probe_settings = settings.model_copy(update={"persistence_path": None})
            provider = create_provider(probe_settings, http_client=http if kind is not ProviderKind.GROQ else None)
            reply = await provider.call_model_with_timeout(PING_PROMPT)
            results.append(CheckResult("Completion", True, f'response: "{reply.content.strip()[:60]}"'))
        except PetFeedbackError as exc:
            logger.debug("completion check failed", exc_info=True)
            results.append(CheckResult("Completion", False, "", str(exc)))
        finally:
            if provider is not None:
                await provider.aclose()
    finally:
        if owns_client:
            await http.aclose()
    return results
