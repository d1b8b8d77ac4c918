"""Availability checks for the external tools the loop shells out to."""

from __future__ import annotations

import shutil
from dataclasses import dataclass

from continuous_claude.loop.backend.cli_backend import agent_command_name


@dataclass(slots=True)
class DependencyStatus:
    """One executable lookup result."""

    name: str
    purpose: str
    path: str | None

    @property
    def available(self) -> bool:
        return self.path is not None


def required_tools(
    *,
    agent_command_template: str,
    enable_commits: bool,
    open_pull_request: bool = True,
) -> list[tuple[str, str]]:
    """List `(executable, purpose)` pairs needed by the configured run."""

    tools = [(agent_command_name(agent_command_template), "agent")]
    if enable_commits:
        tools.append(("git", "version control"))
    if enable_commits and open_pull_request:
        tools.append(("gh", "GitHub pull requests"))
    return tools


def check_dependencies(tools: list[tuple[str, str]]) -> list[DependencyStatus]:
    return [
        DependencyStatus(name=name, purpose=purpose, path=shutil.which(name) if name else None)
        for name, purpose in tools
    ]


def missing_dependencies(statuses: list[DependencyStatus]) -> list[DependencyStatus]:
    return [status for status in statuses if not status.available]
