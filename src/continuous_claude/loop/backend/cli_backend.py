"""Subprocess-based backend for CLI agents."""

from __future__ import annotations

import logging
import shlex
import subprocess

from continuous_claude.loop.backend.base import AgentRunRequest, AgentRunResult

logger = logging.getLogger(__name__)

DEFAULT_AGENT_COMMAND_TEMPLATE = (
    "claude -p {prompt} --dangerously-skip-permissions --output-format json"
)


class BackendRunError(RuntimeError):
    """Backend execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class CliAgentBackend:
    """Execute the agent command template as a blocking subprocess."""

    def run(self, request: AgentRunRequest) -> AgentRunResult:
        run_args, command_head = build_run_args(
            command_template=request.command_template,
            prompt=request.prompt,
        )
        logger.debug("Spawning agent: %s", command_head)
        try:
            completed = subprocess.run(  # noqa: S603
                run_args,
                cwd=request.cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except FileNotFoundError as error:
            raise BackendRunError(
                f"Agent command not found: {command_head}",
                transient=False,
            ) from error
        except OSError as error:
            raise BackendRunError(
                f"Agent command failed to start: {error}",
                transient=True,
            ) from error

        return AgentRunResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


def build_run_args(*, command_template: str, prompt: str) -> tuple[list[str], str]:
    """Render the template with a shell-quoted prompt and split it into argv."""

    stripped = command_template.strip()
    if not stripped:
        raise BackendRunError("Agent command template is empty.", transient=False)
    if "{prompt}" not in stripped:
        raise BackendRunError(
            "Agent command template must include {prompt}.",
            transient=False,
        )

    try:
        rendered = stripped.format(prompt=shlex.quote(prompt))
    except (KeyError, IndexError, ValueError) as error:
        raise BackendRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    try:
        argv = shlex.split(rendered)
    except ValueError as error:
        raise BackendRunError(
            f"Agent command template is not valid shell syntax: {error}",
            transient=False,
        ) from error
    if not argv:
        raise BackendRunError(
            "Agent command template rendered empty command.",
            transient=False,
        )
    return argv, argv[0]


def agent_command_name(command_template: str) -> str:
    """Return the first whitespace-delimited token of the template."""

    parts = command_template.split(maxsplit=1)
    return parts[0] if parts else ""


def render_manual_command(command_template: str, prompt: str = "your prompt") -> str:
    """Render the template for a human to paste into a terminal."""

    try:
        return command_template.strip().format(prompt=shlex.quote(prompt))
    except (KeyError, IndexError, ValueError):
        return command_template.strip()
