"""Main iteration loop: budget guards, routing and termination."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

from continuous_claude.config import LoopSettings
from continuous_claude.loop.completion import check_completion_signal
from continuous_claude.loop.executor import IterationExecutor
from continuous_claude.loop.git_workflow import GitWorkflow, GitWorkflowError
from continuous_claude.loop.models import (
    ClassifiedResult,
    IterationContext,
    LoopState,
    LoopSummary,
    OutcomeKind,
)
from continuous_claude.loop.prompts import build_iteration_prompt
from continuous_claude.loop.result_classifier import classify_agent_result

logger = logging.getLogger(__name__)

TRANSCRIPT_MAX_LINES = 40
ERROR_LOG_MAX_LINES = 20


def get_iteration_display(iteration_num: int, max_runs: int, extra_iterations: int) -> str:
    """Label like `(2/6)`; the denominator grows with every failed iteration."""

    if not max_runs:
        return f"({iteration_num})"
    return f"({iteration_num}/{max_runs + extra_iterations})"


class ContinuousLoop:
    """Drives sequential agent iterations until a terminal state is reached."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: LoopSettings,
        executor: IterationExecutor,
        error_log_path: Path,
        workflow: GitWorkflow | None = None,
        emit: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._executor = executor
        self._error_log_path = error_log_path
        self._workflow = workflow
        self._emit = emit or logger.info
        self._clock = clock
        self._started_at: float | None = None

    def run(self, context: IterationContext | None = None) -> LoopSummary:
        """Step until terminal and emit the final summary."""

        current = context or IterationContext()
        while not current.is_terminal:
            current = self.step(current)

        summary = LoopSummary(
            state=current.state,
            iterations=current.iterations_attempted,
            successful_iterations=current.successful_iterations,
            failed_iterations=current.failed_iterations,
            total_cost=current.total_cost,
            completion_signal_count=current.completion_signal_count,
        )
        for line in render_summary_lines(summary):
            self._emit(line)
        return summary

    def step(self, context: IterationContext) -> IterationContext:
        """Run one cycle and return the updated context."""

        if context.is_terminal:
            return context
        if self._started_at is None:
            self._started_at = self._clock()

        exhausted = self._budget_exhausted(context)
        if exhausted is not None:
            self._emit(exhausted)
            return replace(context, state=LoopState.TERMINATED_BUDGET)

        index = context.iteration_index
        label = get_iteration_display(index, self._settings.max_runs, context.extra_iterations)
        self._emit(f"🔄 {label} Starting iteration...")

        branch_name = self._create_branch(label, index)
        prompt = build_iteration_prompt(
            user_prompt=self._settings.prompt,
            completion_signal=self._settings.completion_signal,
            notes_file=self._settings.notes_file,
        )
        result = self._executor.execute(
            prompt,
            self._settings.agent_command_template,
            self._error_log_path,
        )
        classified = classify_agent_result(result)
        logger.debug(
            "Iteration %d classified as %s (exit code %d)",
            index,
            classified.outcome_kind.value,
            result.exit_code,
        )

        if classified.is_success:
            updated = self._handle_success(context, label, classified, branch_name)
        else:
            updated = self._handle_failure(
                context,
                label,
                classified,
                branch_name,
                exit_code=result.exit_code,
            )
        return replace(updated, iteration_index=index + 1)

    def _budget_exhausted(self, context: IterationContext) -> str | None:
        settings = self._settings
        if settings.max_runs and context.iteration_index > (
            settings.max_runs + context.extra_iterations
        ):
            return f"✅ Reached max runs ({settings.max_runs})."
        if settings.max_cost and context.total_cost >= settings.max_cost:
            return (
                f"💸 Reached the cost budget: ${context.total_cost:.3f} "
                f"of ${settings.max_cost:.3f}."
            )
        if settings.max_duration_seconds and self._started_at is not None:
            elapsed = self._clock() - self._started_at
            if elapsed >= settings.max_duration_seconds:
                return f"⏱️ Reached the time budget ({settings.max_duration_seconds}s)."
        return None

    def _handle_success(
        self,
        context: IterationContext,
        label: str,
        classified: ClassifiedResult,
        branch_name: str | None,
    ) -> IterationContext:
        total_cost = context.total_cost + (classified.cost or 0.0)
        self._emit_transcript(classified.display_text)

        line = f"✅ {label} Work completed"
        if classified.cost is not None:
            line += f" (cost: ${classified.cost:.3f}, total: ${total_cost:.3f})"
        self._emit(line)

        check = check_completion_signal(
            display_text=classified.display_text,
            signal=self._settings.completion_signal,
            prior_count=context.completion_signal_count,
            iteration_label=label,
        )
        if check.notice:
            self._emit(check.notice)

        if branch_name is not None:
            self._publish(branch_name, context.iteration_index, classified.display_text)

        state = LoopState.RUNNING
        if check.count >= self._settings.completion_threshold:
            state = LoopState.TERMINATED_SIGNAL
            self._emit(
                f"🎉 {label} Completion signal seen {check.count} times in a row. "
                "The project looks complete.",
            )

        return replace(
            context,
            total_cost=total_cost,
            completion_signal_count=check.count,
            consecutive_failures=0,
            successful_iterations=context.successful_iterations + 1,
            state=state,
        )

    def _handle_failure(  # noqa: PLR0913
        self,
        context: IterationContext,
        label: str,
        classified: ClassifiedResult,
        branch_name: str | None,
        *,
        exit_code: int,
    ) -> IterationContext:
        failures = context.consecutive_failures + 1
        if classified.outcome_kind == OutcomeKind.AGENT_ERROR:
            headline = f"❌ {label} Agent reported an error"
        else:
            headline = f"❌ {label} Agent exited with code {exit_code}"
        message = _compact(classified.display_text)
        self._emit(f"{headline}: {message}" if message else headline)

        error_log = _read_error_log(self._error_log_path)
        if error_log:
            self._emit(f"   Error log ({self._error_log_path}):")
            for line in error_log.splitlines()[-ERROR_LOG_MAX_LINES:]:
                self._emit(f"   {line}")

        if branch_name is not None:
            self._abandon(branch_name)

        state = LoopState.RUNNING
        limit = self._settings.max_consecutive_failures
        if failures >= limit:
            state = LoopState.TERMINATED_ERROR
            self._emit(f"❌ Fatal: {failures} consecutive errors. Stopping.")
        else:
            self._emit(f"⚠️ {label} Will retry ({failures}/{limit} consecutive errors).")

        return replace(
            context,
            consecutive_failures=failures,
            extra_iterations=context.extra_iterations + 1,
            failed_iterations=context.failed_iterations + 1,
            state=state,
        )

    def _create_branch(self, label: str, index: int) -> str | None:
        if self._workflow is None:
            return None
        try:
            return self._workflow.create_branch(label, index)
        except GitWorkflowError as error:
            logger.warning("%s Could not create iteration branch: %s", label, error)
            return None

    def _publish(self, branch_name: str, index: int, summary: str) -> None:
        if self._workflow is None:
            return
        try:
            published = self._workflow.publish(branch_name, iteration_index=index, summary=summary)
        except GitWorkflowError as error:
            logger.warning("Could not publish %s: %s", branch_name, error)
            return
        self._emit(f"📤 {published.describe()}")

    def _abandon(self, branch_name: str) -> None:
        if self._workflow is None:
            return
        try:
            self._workflow.abandon(branch_name)
        except GitWorkflowError as error:
            logger.warning("Could not clean up %s: %s", branch_name, error)

    def _emit_transcript(self, text: str) -> None:
        lines = [line.rstrip() for line in text.strip().splitlines()]
        if not lines:
            return
        if len(lines) > TRANSCRIPT_MAX_LINES:
            skipped = len(lines) - TRANSCRIPT_MAX_LINES
            lines = [f"... ({skipped} earlier lines)", *lines[-TRANSCRIPT_MAX_LINES:]]
        self._emit("📝 Output:")
        for line in lines:
            self._emit(f"   {line}")


def render_summary_lines(summary: LoopSummary) -> list[str]:
    reasons = {
        LoopState.TERMINATED_BUDGET: "budget exhausted",
        LoopState.TERMINATED_SIGNAL: "completion signal threshold reached",
        LoopState.TERMINATED_ERROR: "too many consecutive errors",
        LoopState.RUNNING: "interrupted",
    }
    return [
        f"Loop finished: {reasons[summary.state]}",
        (
            f"Iterations: {summary.iterations} "
            f"(succeeded={summary.successful_iterations} failed={summary.failed_iterations})"
        ),
        f"Completion signal count: {summary.completion_signal_count}",
        f"Total cost: ${summary.total_cost:.3f}",
    ]


def _read_error_log(path: Path) -> str:
    try:
        return path.read_text("utf-8").strip()
    except FileNotFoundError:
        return ""


def _compact(text: str, limit: int = 500) -> str:
    compact = " ".join(text.strip().split())
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit]}..."
