"""Single agent invocation with error-log bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from continuous_claude.loop.backend import (
    AgentBackend,
    AgentRunRequest,
    BackendRunError,
)
from continuous_claude.loop.backend.cli_backend import render_manual_command
from continuous_claude.loop.models import AgentResult
from continuous_claude.loop.result_classifier import parse_agent_output, structured_error_message

logger = logging.getLogger(__name__)

COMMAND_NOT_STARTED_EXIT_CODE = 127


class IterationExecutor:
    """Invokes the agent once and records diagnostics in the error log."""

    def __init__(
        self,
        *,
        backend: AgentBackend,
        dry_run: bool = False,
        cwd: Path | None = None,
        emit: Callable[[str], None] | None = None,
    ) -> None:
        self._backend = backend
        self._dry_run = dry_run
        self._cwd = cwd
        self._emit = emit or logger.info

    def execute(
        self,
        prompt: str,
        agent_command_template: str,
        error_log_path: Path,
    ) -> AgentResult:
        error_log_path.parent.mkdir(parents=True, exist_ok=True)
        error_log_path.write_text("", "utf-8")

        if self._dry_run:
            self._emit("   (DRY RUN) Would run the agent command; skipping.")
            return AgentResult(raw_output="", exit_code=0, stderr_capture="")

        try:
            run = self._backend.run(
                AgentRunRequest(
                    command_template=agent_command_template,
                    prompt=prompt,
                    cwd=self._cwd,
                ),
            )
        except BackendRunError as error:
            logger.debug("Agent backend failed to start: %s", error)
            message = str(error)
            error_log_path.write_text(message + "\n", "utf-8")
            return AgentResult(
                raw_output="",
                exit_code=COMMAND_NOT_STARTED_EXIT_CODE,
                stderr_capture=message,
            )

        result = AgentResult(
            raw_output=run.stdout,
            exit_code=run.exit_code,
            stderr_capture=run.stderr,
        )
        _write_error_log(
            error_log_path=error_log_path,
            result=result,
            agent_command_template=agent_command_template,
        )
        return result


def _write_error_log(
    *,
    error_log_path: Path,
    result: AgentResult,
    agent_command_template: str,
) -> None:
    sections: list[str] = []
    if result.exit_code != 0:
        if result.stderr_capture:
            sections.append(result.stderr_capture)
        else:
            sections.append(
                build_fallback_diagnostic(
                    exit_code=result.exit_code,
                    agent_command_template=agent_command_template,
                ),
            )

    message = structured_error_message(parse_agent_output(result.raw_output))
    if message is not None:
        sections.append(f"Agent reported error: {message}")

    if not sections:
        return
    text = "\n".join(section.rstrip("\n") for section in sections) + "\n"
    error_log_path.write_text(text, "utf-8")


def build_fallback_diagnostic(*, exit_code: int, agent_command_template: str) -> str:
    """Explain a failed run that left nothing on stderr."""

    return (
        f"Agent exited with code {exit_code} but produced no error output.\n"
        "\n"
        "This usually means:\n"
        "  - the agent process crashed or was killed\n"
        "  - it ran out of memory\n"
        "  - the network connection was lost\n"
        "  - an API rate limit or usage quota was hit\n"
        "\n"
        "Try running the command directly to see the full error:\n"
        f"  {render_manual_command(agent_command_template)}\n"
    )
