"""Runtime configuration for the continuous agent loop."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from continuous_claude.loop.backend.cli_backend import DEFAULT_AGENT_COMMAND_TEMPLATE
from continuous_claude.loop.completion import (
    DEFAULT_COMPLETION_SIGNAL,
    DEFAULT_COMPLETION_THRESHOLD,
)
from continuous_claude.loop.git_workflow import (
    DEFAULT_BRANCH_PREFIX,
    MERGE_STRATEGIES,
    GitWorkflowOptions,
)
from continuous_claude.loop.prompts import DEFAULT_NOTES_FILE

DEFAULT_MAX_CONSECUTIVE_FAILURES = 3

_DURATION_PART = re.compile(r"(\d+)([hms])")


@dataclass(slots=True)
class LoopSettings:
    """Iteration budget and agent invocation settings."""

    prompt: str = ""
    max_runs: int = 0
    max_cost: float = 0.0
    max_duration_seconds: int = 0
    completion_signal: str = DEFAULT_COMPLETION_SIGNAL
    completion_threshold: int = DEFAULT_COMPLETION_THRESHOLD
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    agent_command_template: str = DEFAULT_AGENT_COMMAND_TEMPLATE
    notes_file: Path = Path(DEFAULT_NOTES_FILE)
    dry_run: bool = False


@dataclass(slots=True)
class GitSettings:
    """Branch, commit and pull request settings."""

    enable_commits: bool = True
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    base_branch: str = "main"
    remote: str = "origin"
    owner: str | None = None
    repo: str | None = None
    open_pull_request: bool = True
    merge_pull_request: bool = True
    merge_strategy: str = "squash"

    def workflow_options(self) -> GitWorkflowOptions:
        return GitWorkflowOptions(
            branch_prefix=self.branch_prefix,
            base_branch=self.base_branch,
            remote=self.remote,
            owner=self.owner,
            repo=self.repo,
            open_pull_request=self.open_pull_request,
            merge_pull_request=self.merge_pull_request,
            merge_strategy=self.merge_strategy,
        )


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    loop: LoopSettings = field(default_factory=LoopSettings)
    git: GitSettings = field(default_factory=GitSettings)
    error_log_dir: Path | None = None

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from `CONTINUOUS_CLAUDE_*` environment variables."""

        error_log_dir = os.getenv("CONTINUOUS_CLAUDE_ERROR_LOG_DIR", "").strip()
        return cls(
            loop=LoopSettings(
                max_runs=_env_int("CONTINUOUS_CLAUDE_MAX_RUNS", default=0),
                max_cost=_env_float("CONTINUOUS_CLAUDE_MAX_COST", default=0.0),
                max_duration_seconds=parse_duration(
                    os.getenv("CONTINUOUS_CLAUDE_MAX_DURATION", "0"),
                ),
                completion_signal=os.getenv(
                    "CONTINUOUS_CLAUDE_COMPLETION_SIGNAL",
                    DEFAULT_COMPLETION_SIGNAL,
                ),
                completion_threshold=_env_int(
                    "CONTINUOUS_CLAUDE_COMPLETION_THRESHOLD",
                    default=DEFAULT_COMPLETION_THRESHOLD,
                ),
                max_consecutive_failures=_env_int(
                    "CONTINUOUS_CLAUDE_MAX_CONSECUTIVE_FAILURES",
                    default=DEFAULT_MAX_CONSECUTIVE_FAILURES,
                ),
                agent_command_template=os.getenv(
                    "CONTINUOUS_CLAUDE_AGENT_COMMAND",
                    DEFAULT_AGENT_COMMAND_TEMPLATE,
                ),
                notes_file=Path(os.getenv("CONTINUOUS_CLAUDE_NOTES_FILE", DEFAULT_NOTES_FILE)),
                dry_run=_env_bool("CONTINUOUS_CLAUDE_DRY_RUN", default=False),
            ),
            git=GitSettings(
                enable_commits=_env_bool("CONTINUOUS_CLAUDE_ENABLE_COMMITS", default=True),
                branch_prefix=os.getenv("CONTINUOUS_CLAUDE_BRANCH_PREFIX", DEFAULT_BRANCH_PREFIX),
                base_branch=os.getenv("CONTINUOUS_CLAUDE_BASE_BRANCH", "main"),
                remote=os.getenv("CONTINUOUS_CLAUDE_GIT_REMOTE", "origin"),
                owner=os.getenv("CONTINUOUS_CLAUDE_GITHUB_OWNER") or None,
                repo=os.getenv("CONTINUOUS_CLAUDE_GITHUB_REPO") or None,
                open_pull_request=_env_bool(
                    "CONTINUOUS_CLAUDE_OPEN_PULL_REQUEST",
                    default=True,
                ),
                merge_pull_request=_env_bool(
                    "CONTINUOUS_CLAUDE_MERGE_PULL_REQUEST",
                    default=True,
                ),
                merge_strategy=os.getenv("CONTINUOUS_CLAUDE_MERGE_STRATEGY", "squash"),
            ),
            error_log_dir=Path(error_log_dir) if error_log_dir else None,
        )

    def validate(self) -> None:
        """Raise configuration error before any iteration runs."""

        loop = self.loop
        if not loop.prompt.strip():
            raise ValueError("A prompt is required. Pass --prompt.")
        if loop.max_runs < 0:
            raise ValueError("Max runs must be >= 0.")
        if loop.max_cost < 0:
            raise ValueError("Max cost must be >= 0.")
        if loop.max_duration_seconds < 0:
            raise ValueError("Max duration must be >= 0.")
        if loop.max_runs == 0 and loop.max_cost == 0 and loop.max_duration_seconds == 0:
            raise ValueError(
                "At least one budget is required: --max-runs, --max-cost or --max-duration.",
            )
        if loop.dry_run and loop.max_runs == 0:
            # Dry runs never report cost, so only a run count can stop them.
            raise ValueError("Dry run requires --max-runs.")
        if isinstance(loop.completion_threshold, bool) or not isinstance(
            loop.completion_threshold,
            int,
        ):
            raise ValueError("Completion threshold must be a positive integer.")
        if loop.completion_threshold <= 0:
            raise ValueError("Completion threshold must be a positive integer.")
        if not loop.completion_signal:
            raise ValueError("Completion signal must not be empty.")
        if loop.max_consecutive_failures <= 0:
            raise ValueError("Max consecutive failures must be a positive integer.")
        if "{prompt}" not in loop.agent_command_template:
            raise ValueError("Agent command template must include {prompt}.")
        if self.git.merge_strategy not in MERGE_STRATEGIES:
            raise ValueError(
                f"Invalid merge strategy: {self.git.merge_strategy!r}. "
                f"Expected one of: {', '.join(MERGE_STRATEGIES)}.",
            )
        if bool(self.git.owner) != bool(self.git.repo):
            raise ValueError("GitHub owner and repo must be set together.")


def parse_duration(value: str) -> int:
    """Parse `90`, `90s`, `30m`, `2h` or `1h30m` into seconds."""

    text = value.strip().lower()
    if not text:
        return 0
    if text.isdigit():
        return int(text)
    if _DURATION_PART.sub("", text):
        raise ValueError(f"Invalid duration: {value!r}. Use e.g. 90s, 30m, 2h or 1h30m.")
    multipliers = {"h": 3600, "m": 60, "s": 1}
    return sum(int(amount) * multipliers[unit] for amount, unit in _DURATION_PART.findall(text))


def _env_int(name: str, *, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"{name} must be an integer, got {value!r}.") from error


def _env_float(name: str, *, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"{name} must be a number, got {value!r}.") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
