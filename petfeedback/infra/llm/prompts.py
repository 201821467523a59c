"""Prompt templates for message and exchange analysis.

Both prompts ask for a single JSON object; parsing.py validates the reply
against the Pydantic schemas.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from petfeedback.core.domain.schemas import FeedbackType, PetMood, Severity

HISTORY_WINDOW = 10
_MAX_ACTION_CHARS = 400

# ── Derived option strings (single source of truth) ──────────────────────────

_FEEDBACK_OPTIONS = "|".join(f.value for f in FeedbackType)
_SEVERITY_OPTIONS = "|".join(s.value for s in Severity)
_MOOD_OPTIONS = "|".join(m.value for m in PetMood)

SYSTEM_PROMPT = (
    "You are the inner voice of a small virtual pet watching a developer work "
    "with an AI coding assistant. Respond ONLY with valid JSON. No extra text."
)


def format_history(session_history: Sequence[str], window: int = HISTORY_WINDOW) -> str:
    """Render the most recent history entries as a numbered block."""
    recent = list(session_history)[-window:]
    if not recent:
        return "(no previous messages)"
    return "\n".join(f"  {i}. {entry}" for i, entry in enumerate(recent, start=1))


def _format_actions(actions: Sequence[str]) -> str:
    if not actions:
        return "  (no actions taken)"
    lines = []
    for action in actions:
        text = action if len(action) <= _MAX_ACTION_CHARS else action[:_MAX_ACTION_CHARS] + "..."
        lines.append(f"  - {text}")
    return "\n".join(lines)


def _format_pet_state(pet_state: Any) -> str:
    if pet_state is None:
        return ""
    if isinstance(pet_state, dict):
        return json.dumps(pet_state, sort_keys=True, default=str)
    return str(pet_state)


# ── Message analysis ─────────────────────────────────────────────────────────


def message_analysis_prompt(message: str, session_history: Sequence[str]) -> str:
    return "\n\n".join([
        f"Recent session history:\n{format_history(session_history)}",
        f"New user message:\n{message}",
        'Return JSON: {"summary": "<one sentence>", "intent": "<short label>"}',
    ])


# ── Exchange analysis ────────────────────────────────────────────────────────


def exchange_analysis_prompt(
    *,
    user_request: str,
    assistant_actions: Sequence[str],
    session_history: Sequence[str],
    project_context: Optional[str] = None,
    pet_state: Any = None,
) -> str:
    parts = [
        f"Recent session history:\n{format_history(session_history)}",
        f"User request:\n{user_request}",
        f"Assistant actions:\n{_format_actions(assistant_actions)}",
    ]
    if project_context:
        parts.append(f"Project context:\n{project_context}")
    state_text = _format_pet_state(pet_state)
    if state_text:
        parts.append(f"Current pet state: {state_text}")
    parts.append(
        "Judge whether the assistant did what was asked, and only that.\n"
        "Return JSON with exactly these keys:\n"
        "{\n"
        '  "compliance_score": <0-10>,\n'
        '  "efficiency_score": <0-10>,\n'
        f'  "feedback_type": "{_FEEDBACK_OPTIONS}",\n'
        f'  "severity": "{_SEVERITY_OPTIONS}",\n'
        '  "funny_observation": "<short witty remark from the pet>",\n'
        '  "summary": "<what the assistant is doing>",\n'
        '  "violations": [{"type": "...", "description": "...", '
        f'"severity": "{_SEVERITY_OPTIONS}"}}],\n'
        '  "pet_response": {\n'
        f'    "mood_change": "{_MOOD_OPTIONS}" or null,\n'
        '    "stat_changes": {"happiness": <int>, "energy": <int>},\n'
        '    "thought": "<pet thought>" or null\n'
        "  }\n"
        "}"
    )
    return "\n\n".join(parts)
