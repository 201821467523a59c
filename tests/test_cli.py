"""pet-feedback command line."""

from __future__ import annotations

import json

import pytest

from petfeedback import cli
from petfeedback.core.domain.schemas import Observation
from petfeedback.infra.feedback_store import FeedbackStore


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)


def test_settings_offline(capsys):
    assert cli.main(["settings"]) == 0

    out = capsys.readouterr().out
    assert "none (offline defaults)" in out
    assert "Groq API key:" in out
    assert "not set" in out


def test_settings_shows_selection(monkeypatch, capsys):
    monkeypatch.setenv("GROQ_API_KEY", "gsk-secret")

    assert cli.main(["settings"]) == 0

    out = capsys.readouterr().out
    assert "groq" in out
    assert "gsk-secret" not in out


def test_thoughts_without_database(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("PET_FEEDBACK_DB_PATH", str(tmp_path / "missing.db"))

    assert cli.main(["thoughts"]) == 1
    assert "No thoughts database" in capsys.readouterr().out


def test_thoughts_lists_recent(monkeypatch, tmp_path, capsys):
    db = tmp_path / "feedback.db"
    store = FeedbackStore(str(db))
    for i in range(3):
        store.record(Observation(
            provider="ollama", model="llama3", summary=f"task {i}", thought=f"hmm {i}",
            mood="curious", compliance_score=7, efficiency_score=7, feedback_type="none", severity="good",
        ))
    store.close()
    monkeypatch.setenv("PET_FEEDBACK_DB_PATH", str(db))

    assert cli.main(["thoughts", "--limit", "2"]) == 0

    out = capsys.readouterr().out
    assert "hmm 2" in out
    assert "hmm 1" in out
    assert "hmm 0" not in out
    assert "ollama/llama3" in out


def test_analyze_offline_prints_default(capsys):
    assert cli.main(["analyze", "--request", "fix it", "--action", "Edited a.py"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["compliance_score"] == 7
    assert payload["funny_observation"] == "Working without AI analysis"
    assert payload["feedback_type"] == "none"


def test_check_with_nothing_configured(capsys):
    assert cli.main(["check"]) == 1
    assert "FAIL - Provider selection" in capsys.readouterr().out


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        cli.main(["frobnicate"])
