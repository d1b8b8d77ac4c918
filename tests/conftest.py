"""Shared test fixtures."""

from __future__ import annotations

import os
import shlex
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from continuous_claude.loop.backend import AgentRunRequest, AgentRunResult
from continuous_claude.loop.git_workflow import CommandResult


class ScriptedBackend:
    """Backend returning queued results and recording every request."""

    def __init__(self, results: list[AgentRunResult]) -> None:
        self._results = list(results)
        self.requests: list[AgentRunRequest] = []

    def run(self, request: AgentRunRequest) -> AgentRunResult:
        self.requests.append(request)
        if not self._results:
            raise AssertionError("backend called more times than scripted")
        return self._results.pop(0)


class RecordingRunner:
    """CommandRunner that records argv and answers by command prefix."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self._rules: list[tuple[list[str], CommandResult]] = []

    def respond(
        self,
        prefix: list[str],
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self._rules.append(
            (prefix, CommandResult(args=prefix, returncode=returncode, stdout=stdout, stderr=stderr)),
        )

    def run(self, args: list[str]) -> CommandResult:
        self.calls.append(list(args))
        for prefix, result in self._rules:
            if args[: len(prefix)] == prefix:
                return CommandResult(
                    args=list(args),
                    returncode=result.returncode,
                    stdout=result.stdout,
                    stderr=result.stderr,
                )
        return CommandResult(args=list(args), returncode=0)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep host `CONTINUOUS_CLAUDE_*` variables out of the tests."""
    for name in list(os.environ):
        if name.startswith("CONTINUOUS_CLAUDE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def scripted_backend() -> Callable[..., ScriptedBackend]:
    def _factory(*results: AgentRunResult) -> ScriptedBackend:
        return ScriptedBackend(list(results))

    return _factory


@pytest.fixture()
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture()
def fake_agent(tmp_path: Path) -> Callable[..., str]:
    """Write a throw-away agent script and return its command template."""

    def _factory(*, stdout: str, exit_code: int = 0, stderr: str = "") -> str:
        script = tmp_path / "fake_agent.py"
        script.write_text(
            "import sys\n"
            f"sys.stdout.write({stdout!r})\n"
            f"sys.stderr.write({stderr!r})\n"
            f"raise SystemExit({exit_code})\n",
            "utf-8",
        )
        return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))} {{prompt}}"

    return _factory
