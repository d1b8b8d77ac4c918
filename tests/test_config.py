from __future__ import annotations

from pathlib import Path

import allure
import pytest

from continuous_claude.config import GitSettings, LoopSettings, Settings, parse_duration
from continuous_claude.loop.completion import DEFAULT_COMPLETION_SIGNAL

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings & Validation"),
]


def _settings(**loop_overrides) -> Settings:
    values = {"prompt": "Write docs", "max_runs": 3}
    values.update(loop_overrides)
    return Settings(loop=LoopSettings(**values))


def test_valid_settings_pass() -> None:
    _settings().validate()
    _settings(max_runs=0, max_cost=1.5).validate()
    _settings(max_runs=0, max_duration_seconds=600).validate()


def test_validate_requires_prompt() -> None:
    with pytest.raises(ValueError, match="A prompt is required"):
        _settings(prompt="   ").validate()


def test_validate_requires_a_budget() -> None:
    with pytest.raises(ValueError, match="At least one budget is required"):
        _settings(max_runs=0).validate()


@pytest.mark.parametrize("threshold", [0, -1, True, 2.5])
def test_validate_rejects_invalid_threshold(threshold) -> None:
    with pytest.raises(ValueError, match="Completion threshold must be a positive integer"):
        _settings(completion_threshold=threshold).validate()


def test_validate_rejects_negative_budgets() -> None:
    with pytest.raises(ValueError, match="Max cost must be >= 0"):
        _settings(max_cost=-0.1).validate()
    with pytest.raises(ValueError, match="Max runs must be >= 0"):
        _settings(max_runs=-1).validate()


def test_validate_rejects_template_without_prompt_placeholder() -> None:
    with pytest.raises(ValueError, match=r"must include \{prompt\}"):
        _settings(agent_command_template="claude --print").validate()


def test_validate_dry_run_requires_run_count() -> None:
    with pytest.raises(ValueError, match="Dry run requires --max-runs"):
        _settings(dry_run=True, max_runs=0, max_cost=1.0).validate()


def test_validate_git_settings() -> None:
    settings = _settings()
    settings.git = GitSettings(merge_strategy="octopus")
    with pytest.raises(ValueError, match="Invalid merge strategy"):
        settings.validate()

    settings.git = GitSettings(owner="acme")
    with pytest.raises(ValueError, match="owner and repo must be set together"):
        settings.validate()


def test_from_env_defaults() -> None:
    settings = Settings.from_env()

    assert settings.loop.max_runs == 0
    assert settings.loop.completion_signal == DEFAULT_COMPLETION_SIGNAL
    assert settings.loop.completion_threshold == 3
    assert settings.loop.max_consecutive_failures == 3
    assert "{prompt}" in settings.loop.agent_command_template
    assert settings.loop.notes_file == Path("SHARED_TASK_NOTES.md")
    assert settings.git.enable_commits
    assert settings.git.merge_strategy == "squash"
    assert settings.error_log_dir is None


def test_from_env_reads_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CONTINUOUS_CLAUDE_MAX_RUNS", "7")
    monkeypatch.setenv("CONTINUOUS_CLAUDE_MAX_COST", "2.5")
    monkeypatch.setenv("CONTINUOUS_CLAUDE_MAX_DURATION", "1h30m")
    monkeypatch.setenv("CONTINUOUS_CLAUDE_COMPLETION_THRESHOLD", "2")
    monkeypatch.setenv("CONTINUOUS_CLAUDE_DRY_RUN", "yes")
    monkeypatch.setenv("CONTINUOUS_CLAUDE_ENABLE_COMMITS", "off")
    monkeypatch.setenv("CONTINUOUS_CLAUDE_GITHUB_OWNER", "acme")
    monkeypatch.setenv("CONTINUOUS_CLAUDE_GITHUB_REPO", "widgets")
    monkeypatch.setenv("CONTINUOUS_CLAUDE_ERROR_LOG_DIR", str(tmp_path))

    settings = Settings.from_env()

    assert settings.loop.max_runs == 7
    assert settings.loop.max_cost == 2.5
    assert settings.loop.max_duration_seconds == 5400
    assert settings.loop.completion_threshold == 2
    assert settings.loop.dry_run is True
    assert settings.git.enable_commits is False
    assert settings.git.workflow_options().owner == "acme"
    assert settings.error_log_dir == tmp_path


def test_from_env_rejects_malformed_values(monkeypatch) -> None:
    monkeypatch.setenv("CONTINUOUS_CLAUDE_MAX_RUNS", "many")
    with pytest.raises(ValueError, match="CONTINUOUS_CLAUDE_MAX_RUNS must be an integer"):
        Settings.from_env()

    monkeypatch.delenv("CONTINUOUS_CLAUDE_MAX_RUNS")
    monkeypatch.setenv("CONTINUOUS_CLAUDE_DRY_RUN", "maybe")
    with pytest.raises(ValueError, match="Invalid boolean value for CONTINUOUS_CLAUDE_DRY_RUN"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("value", "seconds"),
    [
        ("", 0),
        ("0", 0),
        ("90", 90),
        ("90s", 90),
        ("30m", 1800),
        ("2h", 7200),
        ("1h30m", 5400),
        ("1H5M10S", 3910),
    ],
)
def test_parse_duration(value: str, seconds: int) -> None:
    assert parse_duration(value) == seconds


@pytest.mark.parametrize("value", ["soon", "10x", "1.5h", "-5m"])
def test_parse_duration_rejects_garbage(value: str) -> None:
    with pytest.raises(ValueError, match="Invalid duration"):
        parse_duration(value)
