"""
Command-line entry point for the pet feedback analyzer.

Usage
-----
  pet-feedback settings                 # resolved LLM configuration
  pet-feedback check                    # probe the selected backend
  pet-feedback thoughts --limit 5       # recent recorded observations
  pet-feedback analyze --request "fix the login bug" --action "Edited auth.py"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from petfeedback.config import Settings, selected_provider
from petfeedback.infra.feedback_store import FeedbackStore
from petfeedback.infra.logging_config import configure_logging
from petfeedback.usecases.analyze import FeedbackAnalyzer
from petfeedback.usecases.check_backend import run_checks

logger = logging.getLogger(__name__)

_RULE = "-" * 60


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pet-feedback", description="Pet feedback – LLM analysis tools")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("settings", help="Show the resolved LLM configuration")
    sub.add_parser("check", help="Test the connection to the selected backend")

    thoughts = sub.add_parser("thoughts", help="Show recent pet observations")
    thoughts.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of observations to show (default: 10)",
    )

    analyze = sub.add_parser("analyze", help="Analyze one request/actions exchange")
    analyze.add_argument("--request", required=True, help="The user's request")
    analyze.add_argument(
        "--action",
        action="append",
        default=[],
        help="An action the assistant took (repeatable)",
    )
    analyze.add_argument(
        "--history",
        action="append",
        default=[],
        help="A previous session message (repeatable)",
    )
    analyze.add_argument("--session-id", default=None)
    return parser.parse_args(argv)


def _print_setting(name: str, value: object) -> None:
    padding = " " * max(0, 22 - len(name))
    print(f"  {name}:{padding}{value}")


def show_settings(cfg: Settings) -> int:
    kind = selected_provider(cfg)
    print("LLM configuration")
    print(_RULE)
    _print_setting("Preference", cfg.llm_provider)
    _print_setting("Selected provider", kind.value if kind else "none (offline defaults)")
    _print_setting("Groq API key", "set" if cfg.has_groq_key else "not set")
    _print_setting("Groq model", cfg.groq_model)
    _print_setting("Groq timeout", f"{cfg.groq_timeout_ms}ms, {cfg.groq_max_retries} retries")
    _print_setting("LM Studio", "enabled" if cfg.lmstudio_enabled else "disabled")
    _print_setting("LM Studio URL", cfg.lmstudio_url)
    _print_setting("LM Studio model", cfg.lmstudio_model)
    _print_setting("LM Studio timeout", f"{cfg.lmstudio_timeout_ms}ms, {cfg.lmstudio_max_retries} retries")
    _print_setting("Ollama", "enabled" if cfg.ollama_enabled else "disabled")
    _print_setting("Ollama URL", cfg.ollama_url)
    _print_setting("Ollama model", cfg.ollama_model)
    print()
    print("Feedback store")
    print(_RULE)
    _print_setting("Feedback", "enabled" if cfg.feedback_enabled else "disabled")
    db_path = Path(cfg.feedback_db_path).expanduser()
    _print_setting("Database", f"{db_path} ({'exists' if db_path.exists() else 'missing'})")
    _print_setting("Max records", cfg.feedback_db_max_size)
    return 0


def check_backend(cfg: Settings) -> int:
    results = asyncio.run(run_checks(cfg))
    print("Backend check")
    print(_RULE)
    for result in results:
        status = "PASS" if result.passed else "FAIL"
        print(f"{status} - {result.name}")
        if result.details:
            print(f"       {result.details}")
        if result.error:
            print(f"       error: {result.error}")
    passed = sum(1 for r in results if r.passed)
    print(_RULE)
    print(f"Summary: {passed}/{len(results)} checks passed")
    return 0 if passed == len(results) else 1


def show_thoughts(cfg: Settings, limit: int) -> int:
    db_path = Path(cfg.feedback_db_path).expanduser()
    if not db_path.exists():
        print(f"No thoughts database found at {db_path}")
        print("Set PET_FEEDBACK_ENABLED=true and keep working; thoughts are recorded automatically.")
        return 1

    store = FeedbackStore(str(db_path), cfg.feedback_db_max_size)
    try:
        observations = store.recent(limit)
    finally:
        store.close()

    if not observations:
        print("No thoughts yet...")
        return 0

    print(f"Recent observations ({len(observations)} most recent)")
    print(_RULE)
    for obs in observations:
        print(obs.thought or obs.summary)
        print(f"   {obs.created_at:%Y-%m-%d %H:%M} · mood: {obs.mood or 'unchanged'} · {obs.provider}/{obs.model}")
    return 0


async def _analyze(cfg: Settings, args: argparse.Namespace) -> int:
    analyzer = FeedbackAnalyzer(cfg)
    try:
        result = await analyzer.analyze_exchange(
            args.request,
            args.action,
            args.history,
            session_id=args.session_id,
        )
    finally:
        await analyzer.aclose()
    print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    cfg = Settings()
    configure_logging(cfg.log_level_int, debug=cfg.feedback_debug, log_dir=cfg.feedback_log_dir)

    if args.command == "settings":
        return show_settings(cfg)
    if args.command == "check":
        return check_backend(cfg)
    if args.command == "thoughts":
        return show_thoughts(cfg, args.limit)
    return asyncio.run(_analyze(cfg, args))


if __name__ == "__main__":
    sys.exit(main())
