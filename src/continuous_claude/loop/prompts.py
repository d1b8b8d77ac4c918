"""Per-iteration prompt construction."""

from __future__ import annotations

from pathlib import Path

DEFAULT_NOTES_FILE = "SHARED_TASK_NOTES.md"
MAX_NOTES_CHARS = 20_000


def build_iteration_prompt(
    *,
    user_prompt: str,
    completion_signal: str,
    notes_file: Path,
) -> str:
    """Wrap the user goal with loop context and the notes from earlier iterations."""

    parts = [
        "## CONTINUOUS WORKFLOW CONTEXT",
        "",
        "You are one iteration of a loop that works on the goal below in small steps.",
        "Other iterations ran before you and more may run after you, each in a fresh",
        "session. Make one meaningful, self-contained piece of progress, keep the",
        "project in a working state, and leave clear notes for the next iteration.",
        "",
        f"**Notes file**: `{notes_file.name}` is shared between iterations. Read it",
        "first if it exists, then update it with what you did, what you learned and",
        "what should happen next. Keep it short; remove notes that are no longer true.",
        "",
        "**Project completion signal**: only when the ENTIRE goal is finished, with",
        f"nothing meaningful left to do, include the exact phrase `{completion_signal}`",
        "in your final response. Never use it for a partial or single-step completion.",
        "",
        "## PRIMARY GOAL",
        "",
        user_prompt.strip(),
    ]

    notes = _read_notes(notes_file)
    if notes:
        parts.extend(
            [
                "",
                f"## NOTES FROM PREVIOUS ITERATIONS ({notes_file.name})",
                "",
                notes,
            ],
        )
    return "\n".join(parts) + "\n"


def _read_notes(notes_file: Path) -> str:
    try:
        text = notes_file.read_text("utf-8").strip()
    except (FileNotFoundError, IsADirectoryError):
        return ""
    if len(text) > MAX_NOTES_CHARS:
        return "[earlier notes truncated]\n" + text[-MAX_NOTES_CHARS:]
    return text
