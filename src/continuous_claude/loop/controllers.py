"""Controllers for loop CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import TypeVar

from continuous_claude.config import Settings, parse_duration
from continuous_claude.loop.backend import CliAgentBackend
from continuous_claude.loop.dependencies import (
    check_dependencies,
    missing_dependencies,
    required_tools,
)
from continuous_claude.loop.engine import ContinuousLoop
from continuous_claude.loop.executor import IterationExecutor
from continuous_claude.loop.git_workflow import (
    GitWorkflow,
    SubprocessCommandRunner,
    resolve_github_repo,
)
from continuous_claude.loop.models import LoopSummary

logger = logging.getLogger(__name__)

ERROR_LOG_FILENAME = "agent_error.log"

T = TypeVar("T")


@dataclass(slots=True)
class RunLoopCommand:
    """CLI input for a loop run; `None` keeps the environment value."""

    prompt: str
    max_runs: int | None = None
    max_cost: float | None = None
    max_duration: str | None = None
    completion_signal: str | None = None
    completion_threshold: int | None = None
    max_consecutive_failures: int | None = None
    agent_command: str | None = None
    notes_file: Path | None = None
    error_log_dir: Path | None = None
    working_dir: Path | None = None
    dry_run: bool = False
    disable_commits: bool = False
    branch_prefix: str | None = None
    base_branch: str | None = None
    owner: str | None = None
    repo: str | None = None
    merge_strategy: str | None = None
    no_pull_request: bool = False
    no_merge: bool = False


@dataclass(slots=True)
class CheckDependenciesCommand:
    """CLI input for the dependency check."""

    agent_command: str | None = None
    disable_commits: bool = False


@dataclass(slots=True)
class DependencyCheckResult:
    """Dependency report to render in CLI."""

    lines: list[str]
    success: bool


class LoopCliController:
    """Wires settings, backend, executor and git workflow into a loop run."""

    def run(self, command: RunLoopCommand, *, emit: Callable[[str], None]) -> LoopSummary:
        settings = build_settings(command)
        settings.validate()
        working_dir = command.working_dir

        if not settings.loop.dry_run:
            missing = missing_dependencies(
                check_dependencies(
                    required_tools(
                        agent_command_template=settings.loop.agent_command_template,
                        enable_commits=settings.git.enable_commits,
                        open_pull_request=settings.git.open_pull_request,
                    ),
                ),
            )
            if missing:
                names = ", ".join(f"{status.name} ({status.purpose})" for status in missing)
                raise ValueError(f"Missing required commands: {names}")

        runner = SubprocessCommandRunner(cwd=working_dir)
        workflow: GitWorkflow | None = None
        if settings.git.enable_commits:
            git_settings = settings.git
            if (
                not settings.loop.dry_run
                and git_settings.open_pull_request
                and not (git_settings.owner and git_settings.repo)
            ):
                detected = resolve_github_repo(runner, remote=git_settings.remote)
                if detected is not None:
                    git_settings = replace(git_settings, owner=detected[0], repo=detected[1])
                    logger.debug("Detected GitHub repository %s/%s", *detected)
            workflow = GitWorkflow(
                runner=runner,
                options=git_settings.workflow_options(),
                dry_run=settings.loop.dry_run,
                emit=emit,
            )

        emit(_banner(settings))
        with _error_log_dir(settings.error_log_dir) as log_dir:
            loop = ContinuousLoop(
                settings=settings.loop,
                executor=IterationExecutor(
                    backend=CliAgentBackend(),
                    dry_run=settings.loop.dry_run,
                    cwd=working_dir,
                    emit=emit,
                ),
                error_log_path=log_dir / ERROR_LOG_FILENAME,
                workflow=workflow,
                emit=emit,
            )
            return loop.run()

    def check(self, command: CheckDependenciesCommand) -> DependencyCheckResult:
        settings = Settings.from_env()
        statuses = check_dependencies(
            required_tools(
                agent_command_template=command.agent_command
                or settings.loop.agent_command_template,
                enable_commits=settings.git.enable_commits and not command.disable_commits,
                open_pull_request=settings.git.open_pull_request,
            ),
        )
        lines = [
            f"{status.name} ({status.purpose}): "
            + (f"found at {status.path}" if status.path else "not found in PATH")
            for status in statuses
        ]
        success = not missing_dependencies(statuses)
        lines.append(f"Dependency status: {'ok' if success else 'missing'}")
        return DependencyCheckResult(lines=lines, success=success)


def build_settings(command: RunLoopCommand) -> Settings:
    """Overlay CLI values on environment settings."""

    settings = Settings.from_env()
    loop = settings.loop
    git = settings.git

    notes_file = command.notes_file or loop.notes_file
    if command.working_dir is not None and not notes_file.is_absolute():
        notes_file = command.working_dir / notes_file

    loop = replace(
        loop,
        prompt=command.prompt,
        max_runs=_pick(command.max_runs, loop.max_runs),
        max_cost=_pick(command.max_cost, loop.max_cost),
        max_duration_seconds=(
            parse_duration(command.max_duration)
            if command.max_duration is not None
            else loop.max_duration_seconds
        ),
        completion_signal=_pick(command.completion_signal, loop.completion_signal),
        completion_threshold=_pick(command.completion_threshold, loop.completion_threshold),
        max_consecutive_failures=_pick(
            command.max_consecutive_failures,
            loop.max_consecutive_failures,
        ),
        agent_command_template=_pick(command.agent_command, loop.agent_command_template),
        notes_file=notes_file,
        dry_run=loop.dry_run or command.dry_run,
    )
    git = replace(
        git,
        enable_commits=git.enable_commits and not command.disable_commits,
        branch_prefix=_pick(command.branch_prefix, git.branch_prefix),
        base_branch=_pick(command.base_branch, git.base_branch),
        owner=_pick(command.owner, git.owner),
        repo=_pick(command.repo, git.repo),
        merge_strategy=_pick(command.merge_strategy, git.merge_strategy),
        open_pull_request=git.open_pull_request and not command.no_pull_request,
        merge_pull_request=git.merge_pull_request and not command.no_merge,
    )
    return replace(
        settings,
        loop=loop,
        git=git,
        error_log_dir=_pick(command.error_log_dir, settings.error_log_dir),
    )


def _pick(value: T | None, fallback: T) -> T:
    return fallback if value is None else value


def _banner(settings: Settings) -> str:
    loop = settings.loop
    budgets = []
    if loop.max_runs:
        budgets.append(f"max_runs={loop.max_runs}")
    if loop.max_cost:
        budgets.append(f"max_cost=${loop.max_cost:.2f}")
    if loop.max_duration_seconds:
        budgets.append(f"max_duration={loop.max_duration_seconds}s")
    flags = []
    if loop.dry_run:
        flags.append("dry-run")
    if not settings.git.enable_commits:
        flags.append("commits disabled")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return (
        f"🔂 Starting continuous loop: {' '.join(budgets)} "
        f"completion_threshold={loop.completion_threshold}{suffix}"
    )


@contextmanager
def _error_log_dir(configured: Path | None) -> Iterator[Path]:
    if configured is not None:
        configured.mkdir(parents=True, exist_ok=True)
        yield configured
        return
    with TemporaryDirectory(prefix="continuous-claude-") as tmp:
        yield Path(tmp)
