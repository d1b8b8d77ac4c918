"""Consecutive completion-signal tracking."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_COMPLETION_SIGNAL = "CONTINUOUS_CLAUDE_PROJECT_COMPLETE"
DEFAULT_COMPLETION_THRESHOLD = 3


@dataclass(slots=True)
class CompletionCheck:
    """Updated counter after scanning one successful iteration."""

    count: int
    detected: bool
    notice: str | None = None


def check_completion_signal(
    *,
    display_text: str,
    signal: str,
    prior_count: int,
    iteration_label: str = "",
) -> CompletionCheck:
    """Exact, case-sensitive substring test; a miss resets the counter."""

    label = f"{iteration_label} " if iteration_label else ""
    if signal in display_text:
        count = prior_count + 1
        return CompletionCheck(
            count=count,
            detected=True,
            notice=f"🎯 {label}Completion signal detected ({count} in a row)",
        )

    if prior_count > 0:
        return CompletionCheck(
            count=0,
            detected=False,
            notice=(
                f"🔄 {label}Completion signal not found, "
                f"resetting counter (was {prior_count})"
            ),
        )
    return CompletionCheck(count=0, detected=False)
