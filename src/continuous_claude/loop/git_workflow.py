"""Branch-per-iteration git and GitHub CLI workflow."""

from __future__ import annotations

import logging
import re
import secrets
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_PREFIX = "continuous-claude/"
MERGE_STRATEGIES: tuple[str, ...] = ("squash", "merge", "rebase")

_GITHUB_REMOTE = re.compile(
    r"github\.com[:/](?P<owner>[^/\s]+)/(?P<repo>[^/\s]+?)(?:\.git)?/?$",
)


class GitWorkflowError(RuntimeError):
    """A git or gh command failed."""


@dataclass(slots=True)
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Runs external version-control and hosting commands."""

    def run(self, args: list[str]) -> CommandResult:
        """Run `args` and capture its output."""


class SubprocessCommandRunner:
    """Run commands with `subprocess`, inside the working tree."""

    def __init__(self, cwd: Path | None = None) -> None:
        self._cwd = cwd

    def run(self, args: list[str]) -> CommandResult:
        logger.debug("Running: %s", " ".join(args))
        try:
            completed = subprocess.run(  # noqa: S603
                args,
                cwd=self._cwd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as error:
            return CommandResult(args=args, returncode=127, stderr=str(error))
        return CommandResult(
            args=args,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


@dataclass(slots=True)
class GitWorkflowOptions:
    """Repository-side behavior of the workflow."""

    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    base_branch: str = "main"
    remote: str = "origin"
    owner: str | None = None
    repo: str | None = None
    open_pull_request: bool = True
    merge_pull_request: bool = True
    merge_strategy: str = "squash"


@dataclass(slots=True)
class PublishResult:
    """What happened to an iteration branch after a successful run."""

    branch_name: str
    committed: bool
    pr_url: str | None = None
    merged: bool = False

    def describe(self) -> str:
        if not self.committed:
            return f"no changes to commit on {self.branch_name}"
        if self.merged:
            return f"merged {self.branch_name}" + (f" ({self.pr_url})" if self.pr_url else "")
        if self.pr_url:
            return f"opened pull request {self.pr_url}"
        return f"pushed {self.branch_name}"


def build_branch_name(*, prefix: str, iteration_index: int, today: date, suffix: str) -> str:
    return f"{prefix}iteration-{iteration_index}/{today.isoformat()}-{suffix}"


def random_branch_suffix() -> str:
    return secrets.token_hex(4)


def detect_github_repo(remote_url: str) -> tuple[str, str] | None:
    """Parse `(owner, repo)` from an https or ssh GitHub remote URL."""

    match = _GITHUB_REMOTE.search(remote_url.strip())
    if match is None:
        return None
    return match.group("owner"), match.group("repo")


class GitWorkflow:
    """Creates, publishes and discards one branch per iteration."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        runner: CommandRunner,
        options: GitWorkflowOptions | None = None,
        dry_run: bool = False,
        today: Callable[[], date] = date.today,
        branch_suffix: Callable[[], str] = random_branch_suffix,
        emit: Callable[[str], None] | None = None,
    ) -> None:
        self._runner = runner
        self._options = options or GitWorkflowOptions()
        self._dry_run = dry_run
        self._today = today
        self._branch_suffix = branch_suffix
        self._emit = emit or logger.info

    def create_branch(self, iteration_label: str, iteration_index: int) -> str:
        branch_name = build_branch_name(
            prefix=self._options.branch_prefix,
            iteration_index=iteration_index,
            today=self._today(),
            suffix=self._branch_suffix(),
        )
        if self._dry_run:
            self._emit(f"🌿 {iteration_label} (DRY RUN) Would create branch: {branch_name}")
            return branch_name

        self._git("checkout", "-b", branch_name)
        self._emit(f"🌿 {iteration_label} Created branch: {branch_name}")
        return branch_name

    def publish(self, branch_name: str, *, iteration_index: int, summary: str) -> PublishResult:
        """Commit, push and optionally open and merge a pull request."""

        if self._dry_run:
            self._emit(f"📤 (DRY RUN) Would commit and push {branch_name}")
            return PublishResult(branch_name=branch_name, committed=False)

        status = self._git("status", "--porcelain")
        if not status.stdout.strip():
            self.abandon(branch_name)
            return PublishResult(branch_name=branch_name, committed=False)

        try:
            return self._commit_and_push(
                branch_name,
                iteration_index=iteration_index,
                summary=summary,
            )
        except GitWorkflowError:
            # Next iteration must branch off the base, not off this branch.
            self._return_to_base(pull=False)
            raise

    def _commit_and_push(
        self,
        branch_name: str,
        *,
        iteration_index: int,
        summary: str,
    ) -> PublishResult:
        title = f"continuous-claude: iteration {iteration_index}"
        self._git("add", "-A")
        self._git("commit", "-m", _commit_message(title=title, summary=summary))
        self._git("push", "-u", self._options.remote, branch_name)

        if not self._options.open_pull_request:
            self._return_to_base(pull=False)
            return PublishResult(branch_name=branch_name, committed=True)

        created = self._gh(
            "pr",
            "create",
            "--title",
            title,
            "--body",
            _pull_request_body(summary),
            "--base",
            self._options.base_branch,
            "--head",
            branch_name,
        )
        pr_url = created.stdout.strip() or None

        if not self._options.merge_pull_request:
            self._return_to_base(pull=False)
            return PublishResult(branch_name=branch_name, committed=True, pr_url=pr_url)

        self._wait_for_checks(branch_name)
        self._gh(
            "pr",
            "merge",
            branch_name,
            f"--{self._options.merge_strategy}",
            "--delete-branch",
        )
        self._return_to_base(pull=True)
        return PublishResult(branch_name=branch_name, committed=True, pr_url=pr_url, merged=True)

    def abandon(self, branch_name: str) -> None:
        """Return to the base branch and delete the iteration branch."""

        if self._dry_run:
            return
        self._git("checkout", self._options.base_branch)
        self._git("branch", "-D", branch_name)

    def _wait_for_checks(self, branch_name: str) -> None:
        command = self._gh_command("pr", "checks", branch_name, "--watch")
        result = self._runner.run(command)
        if result.ok:
            return
        output = f"{result.stdout}\n{result.stderr}".lower()
        if "no checks reported" in output:
            return
        raise GitWorkflowError(f"Pull request checks failed for {branch_name}")

    def _return_to_base(self, *, pull: bool) -> None:
        self._git("checkout", self._options.base_branch)
        if pull:
            self._git("pull", "--ff-only", self._options.remote, self._options.base_branch)

    def _git(self, *args: str) -> CommandResult:
        return self._checked(["git", *args])

    def _gh(self, *args: str) -> CommandResult:
        return self._checked(self._gh_command(*args))

    def _gh_command(self, *args: str) -> list[str]:
        command = ["gh", *args]
        if self._options.owner and self._options.repo:
            command.extend(["--repo", f"{self._options.owner}/{self._options.repo}"])
        return command

    def _checked(self, args: list[str]) -> CommandResult:
        result = self._runner.run(args)
        if not result.ok:
            detail = (result.stderr or result.stdout).strip() or f"exit code {result.returncode}"
            raise GitWorkflowError(f"`{' '.join(args[:3])}` failed: {detail}")
        return result


def resolve_github_repo(
    runner: CommandRunner,
    *,
    remote: str = "origin",
) -> tuple[str, str] | None:
    """Detect `(owner, repo)` from the configured git remote."""

    result = runner.run(["git", "remote", "get-url", remote])
    if not result.ok:
        return None
    return detect_github_repo(result.stdout)


def _commit_message(*, title: str, summary: str) -> str:
    excerpt = _excerpt(summary, limit=1_000)
    if not excerpt:
        return title
    return f"{title}\n\n{excerpt}"


def _pull_request_body(summary: str) -> str:
    excerpt = _excerpt(summary, limit=4_000)
    body = "Automated iteration created by continuous-claude."
    if excerpt:
        body += f"\n\n## Agent summary\n\n{excerpt}"
    return body


def _excerpt(text: str, *, limit: int) -> str:
    compact = text.strip()
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit]}..."
