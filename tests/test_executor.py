from __future__ import annotations

from pathlib import Path

import allure

from continuous_claude.loop.backend import (
    AgentRunRequest,
    AgentRunResult,
    BackendRunError,
    CliAgentBackend,
)
from continuous_claude.loop.executor import (
    COMMAND_NOT_STARTED_EXIT_CODE,
    IterationExecutor,
    build_fallback_diagnostic,
)

pytestmark = [
    allure.epic("Iteration Loop"),
    allure.feature("Iteration Executor"),
]

TEMPLATE = "claude -p {prompt} --output-format json"


class _ExplodingBackend:
    def run(self, request: AgentRunRequest) -> AgentRunResult:
        raise AssertionError("backend must not be called")


class _FailingBackend:
    def run(self, request: AgentRunRequest) -> AgentRunResult:
        raise BackendRunError("Agent command not found: claude", transient=False)


def test_dry_run_skips_backend_and_leaves_empty_log(tmp_path: Path) -> None:
    lines: list[str] = []
    log_path = tmp_path / "logs" / "agent_error.log"
    executor = IterationExecutor(backend=_ExplodingBackend(), dry_run=True, emit=lines.append)

    result = executor.execute("do work", TEMPLATE, log_path)

    assert result.exit_code == 0
    assert result.raw_output == ""
    assert log_path.read_text("utf-8") == ""
    assert any("DRY RUN" in line for line in lines)


def test_success_truncates_previous_log(tmp_path: Path, scripted_backend) -> None:
    log_path = tmp_path / "agent_error.log"
    log_path.write_text("stale failure from last iteration\n", "utf-8")
    backend = scripted_backend(AgentRunResult(exit_code=0, stdout='{"result": "ok"}', stderr=""))

    result = IterationExecutor(backend=backend).execute("do work", TEMPLATE, log_path)

    assert result.raw_output == '{"result": "ok"}'
    assert log_path.read_text("utf-8") == ""
    assert backend.requests[0].prompt == "do work"
    assert backend.requests[0].command_template == TEMPLATE


def test_nonzero_exit_writes_stderr_to_log(tmp_path: Path, scripted_backend) -> None:
    log_path = tmp_path / "agent_error.log"
    backend = scripted_backend(
        AgentRunResult(exit_code=1, stdout="", stderr="API Error: 529 overloaded\n"),
    )

    result = IterationExecutor(backend=backend).execute("p", TEMPLATE, log_path)

    assert result.exit_code == 1
    assert result.stderr_capture == "API Error: 529 overloaded\n"
    assert log_path.read_text("utf-8") == "API Error: 529 overloaded\n"


def test_silent_failure_writes_fallback_diagnostic(tmp_path: Path, scripted_backend) -> None:
    log_path = tmp_path / "agent_error.log"
    backend = scripted_backend(AgentRunResult(exit_code=2, stdout="", stderr=""))

    IterationExecutor(backend=backend).execute("p", TEMPLATE, log_path)

    text = log_path.read_text("utf-8")
    assert "Agent exited with code 2 but produced no error output." in text
    assert "Try running the command directly" in text
    assert "claude -p 'your prompt' --output-format json" in text


def test_structured_error_message_is_appended_to_log(tmp_path: Path, scripted_backend) -> None:
    log_path = tmp_path / "agent_error.log"
    backend = scripted_backend(
        AgentRunResult(
            exit_code=1,
            stdout='{"is_error": true, "result": "usage limit reached"}',
            stderr="stderr detail",
        ),
    )

    IterationExecutor(backend=backend).execute("p", TEMPLATE, log_path)

    assert log_path.read_text("utf-8").splitlines() == [
        "stderr detail",
        "Agent reported error: usage limit reached",
    ]


def test_structured_error_on_zero_exit_is_logged(tmp_path: Path, scripted_backend) -> None:
    log_path = tmp_path / "agent_error.log"
    backend = scripted_backend(
        AgentRunResult(exit_code=0, stdout='{"is_error": true, "error": "bad key"}', stderr=""),
    )

    IterationExecutor(backend=backend).execute("p", TEMPLATE, log_path)

    assert log_path.read_text("utf-8") == "Agent reported error: bad key\n"


def test_backend_start_failure_becomes_exit_code_127(tmp_path: Path) -> None:
    log_path = tmp_path / "agent_error.log"

    result = IterationExecutor(backend=_FailingBackend()).execute("p", TEMPLATE, log_path)

    assert result.exit_code == COMMAND_NOT_STARTED_EXIT_CODE
    assert result.stderr_capture == "Agent command not found: claude"
    assert "Agent command not found" in log_path.read_text("utf-8")


def test_real_subprocess_failure_is_recorded(tmp_path: Path, fake_agent) -> None:
    template = fake_agent(stdout="partial output", exit_code=4, stderr="crashed hard")
    log_path = tmp_path / "agent_error.log"

    result = IterationExecutor(backend=CliAgentBackend(), cwd=tmp_path).execute(
        "p",
        template,
        log_path,
    )

    assert result.exit_code == 4
    assert result.raw_output == "partial output"
    assert log_path.read_text("utf-8") == "crashed hard\n"


def test_fallback_diagnostic_renders_unformattable_template_verbatim() -> None:
    text = build_fallback_diagnostic(exit_code=9, agent_command_template="agent {model} {prompt}")

    assert "Agent exited with code 9" in text
    assert "agent {model} {prompt}" in text
