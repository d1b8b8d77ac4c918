"""Backend interface for agent invocations."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class AgentRunRequest:
    """Inputs required to invoke the agent once."""

    command_template: str
    prompt: str
    cwd: Path | None = None


@dataclass(slots=True)
class AgentRunResult:
    """Captured output of one agent process."""

    exit_code: int
    stdout: str
    stderr: str


class AgentBackend(Protocol):
    """Protocol implemented by agent runners."""

    def run(self, request: AgentRunRequest) -> AgentRunResult:
        """Run the agent and return its exit code and captured streams."""
