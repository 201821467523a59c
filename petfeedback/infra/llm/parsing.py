"""Turn raw model text into validated analysis objects."""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from petfeedback.core.domain.exceptions import LLMResponseFormatError
from petfeedback.core.domain.schemas import AnalysisResult, MessageAnalysis, PetMood

_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL)
_SCORE_KEYS = ("compliance_score", "efficiency_score")
_SCORE_MIN, _SCORE_MAX = 0, 10
_MOODS = frozenset(m.value for m in PetMood)


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the first JSON object in *text* (fences and prose tolerated).

    Raises ValueError when nothing parseable is found.
    """
    stripped = text.strip()

    match = _FENCE_RE.search(stripped)
    if match:
        stripped = match.group(1).strip()

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        # prose around the object -- take the outermost braces
        start = stripped.find("{")
        end = stripped.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("no JSON object found in model output") from None
        try:
            data = json.loads(stripped[start:end + 1])
        except json.JSONDecodeError as exc:
            raise ValueError(f"Could not parse JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _clamp_scores(data: dict[str, Any]) -> dict[str, Any]:
    out = dict(data)
    for key in _SCORE_KEYS:
        value = out.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            out[key] = int(round(min(max(value, _SCORE_MIN), _SCORE_MAX)))
    return out


def _normalize_pet_response(data: dict[str, Any]) -> dict[str, Any]:
    pet = data.get("pet_response")
    if isinstance(pet, dict):
        pet = dict(pet)
        mood = pet.get("mood_change")
        # moods outside the pet vocabulary are dropped, not rejected
        if isinstance(mood, str) and mood.strip().lower() in _MOODS:
            pet["mood_change"] = mood.strip().lower()
        else:
            pet["mood_change"] = None
        stats = pet.get("stat_changes")
        if isinstance(stats, dict):
            pet["stat_changes"] = {
                name: int(round(value)) if isinstance(value, float) else value
                for name, value in stats.items()
            }
        elif stats is None:
            pet["stat_changes"] = {}
        data = {**data, "pet_response": pet}
    if data.get("violations") is None:
        data = {**data, "violations": []}
    return data


def parse_analysis(provider: str, text: str) -> AnalysisResult:
    try:
        data = extract_json_object(text)
        return AnalysisResult.model_validate(_normalize_pet_response(_clamp_scores(data)))
    except (ValueError, ValidationError) as exc:
        raise LLMResponseFormatError(provider, f"invalid analysis output: {exc}") from exc


def parse_message_analysis(provider: str, text: str) -> MessageAnalysis:
    try:
        return MessageAnalysis.model_validate(extract_json_object(text))
    except (ValueError, ValidationError) as exc:
        raise LLMResponseFormatError(provider, f"invalid message analysis output: {exc}") from exc
