"""Fallback values used when no LLM analysis is available."""

from __future__ import annotations

from .schemas import AnalysisResult, FeedbackType, MessageAnalysis, PetResponse, Severity

DEFAULT_OBSERVATION = "Working without AI analysis"
DEFAULT_SUMMARY = "Performing task"
UNKNOWN_INTENT = "unknown"
_SUMMARY_MAX_CHARS = 100


def default_analysis() -> AnalysisResult:
    """Neutral, schema-valid result: decent scores, no violations, pet untouched.

    A fresh instance is built on every call so callers may mutate it freely.
    """
    return AnalysisResult(
        compliance_score=7,
        efficiency_score=7,
        feedback_type=FeedbackType.NONE,
        severity=Severity.GOOD,
        observation=DEFAULT_OBSERVATION,
        summary=DEFAULT_SUMMARY,
        violations=[],
        pet_response=PetResponse(mood_change=None, stat_changes={}, thought=None),
    )


def default_message_analysis(message: str) -> MessageAnalysis:
    summary = message.strip()
    if len(summary) > _SUMMARY_MAX_CHARS:
        summary = summary[: _SUMMARY_MAX_CHARS - 3] + "..."
    return MessageAnalysis(summary=summary or DEFAULT_SUMMARY, intent=UNKNOWN_INTENT)
