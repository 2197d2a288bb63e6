from unittest.mock import MagicMock

import pytest

import pilot
from conftest import git
from core.config import PilotSettings
from pilot_brain import GeneratedCommand

SETTINGS = PilotSettings(groq_api_key="gsk_test", default_model="groq-llama-3.3")


@pytest.fixture
def fake_generate(monkeypatch):
    gen = MagicMock(return_value=GeneratedCommand("git status", "Shows the working tree status", None))
    monkeypatch.setattr(pilot, "generate_command", gen)
    return gen


def _never_confirm(*args, **kwargs):
    raise AssertionError("confirmation must not be asked")


def test_not_a_repository(tmp_path, fake_generate):
    assert pilot.handle_request("status", SETTINGS, str(tmp_path), confirm=_never_confirm) is None
    fake_generate.assert_not_called()


def test_no_keys_stops_before_generation(git_repo, fake_generate, monkeypatch):
    # ключей нет - снимок репозитория не снимаем, генерацию не зовём
    monkeypatch.setattr(pilot.RepositoryInspector, "snapshot", MagicMock(side_effect=AssertionError("snapshot")))
    assert pilot.handle_request("status", PilotSettings(), str(git_repo), confirm=_never_confirm) is None
    fake_generate.assert_not_called()


def test_safe_command_runs_without_confirmation(git_repo, fake_generate):
    res = pilot.handle_request("what is going on", SETTINGS, str(git_repo), confirm=_never_confirm)
    assert res is not None and res.success and res.executed
    args, kwargs = fake_generate.call_args
    assert args[0] == "what is going on"
    assert args[1].branch == "main"
    assert args[2] == "3"
    assert kwargs == {"gemini_api_key": None, "groq_api_key": "gsk_test"}


def test_destructive_command_declined(git_repo, fake_generate):
    fake_generate.return_value = GeneratedCommand("git reset --hard HEAD~1", "Drop the last commit", None)
    head = git(git_repo, "rev-parse", "HEAD")
    asked = []

    def decline(question, default):
        asked.append((question, default))
        return False

    assert pilot.handle_request("drop last commit", SETTINGS, str(git_repo), confirm=decline) is None
    assert asked == [("Execute potentially destructive command: git reset --hard HEAD~1?", False)]
    assert git(git_repo, "rev-parse", "HEAD") == head


def test_destructive_command_auto_confirmed(git_repo, fake_generate):
    fake_generate.return_value = GeneratedCommand("git reset --hard HEAD~1", "Drop the last commit", None)
    settings = PilotSettings(groq_api_key="gsk_test", auto_confirm=True)
    res = pilot.handle_request("drop last commit", settings, str(git_repo), confirm=_never_confirm)
    assert res.success
    assert res.warnings == ["⚠️ This will discard all uncommitted changes"]
    assert not (git_repo / "app.txt").exists()


def test_dry_run_does_not_touch_repository(git_repo, fake_generate):
    fake_generate.return_value = GeneratedCommand("git reset --hard HEAD~1", "", None)
    res = pilot.handle_request("drop last commit", SETTINGS, str(git_repo), dry_run=True, confirm=_never_confirm)
    assert res.executed is False
    assert res.output == "Would execute: git reset --hard HEAD~1"
    assert (git_repo / "app.txt").exists()


def test_generation_failure(git_repo, fake_generate):
    fake_generate.return_value = GeneratedCommand(None, "Failed to generate command: boom", "Please try again")
    assert pilot.handle_request("status", SETTINGS, str(git_repo), confirm=_never_confirm) is None


def test_injection_aborts_request(git_repo, fake_generate):
    fake_generate.return_value = GeneratedCommand("git status; rm -rf .", "", None)
    assert pilot.handle_request("status", SETTINGS, str(git_repo), confirm=_never_confirm) is None
    assert (git_repo / "README.md").exists()


def test_preview_helper(git_repo):
    res = pilot.handle_preview("log --oneline", str(git_repo))
    assert res.output == "Would execute: git log --oneline"
    assert pilot.handle_preview("git log | head", str(git_repo)) is None
