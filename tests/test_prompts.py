from __future__ import annotations

from pathlib import Path

import allure

from continuous_claude.loop.prompts import MAX_NOTES_CHARS, build_iteration_prompt

pytestmark = [
    allure.epic("Iteration Loop"),
    allure.feature("Iteration Prompt"),
]


def test_prompt_without_notes(tmp_path: Path) -> None:
    prompt = build_iteration_prompt(
        user_prompt="  Add a CHANGELOG  ",
        completion_signal="ALL_DONE",
        notes_file=tmp_path / "NOTES.md",
    )

    assert "## CONTINUOUS WORKFLOW CONTEXT" in prompt
    assert "## PRIMARY GOAL\n\nAdd a CHANGELOG\n" in prompt
    assert "`ALL_DONE`" in prompt
    assert "`NOTES.md`" in prompt
    assert "NOTES FROM PREVIOUS ITERATIONS" not in prompt


def test_prompt_appends_existing_notes(tmp_path: Path) -> None:
    notes = tmp_path / "NOTES.md"
    notes.write_text("- parser done\n- docs next\n", "utf-8")

    prompt = build_iteration_prompt(
        user_prompt="Ship it",
        completion_signal="ALL_DONE",
        notes_file=notes,
    )

    assert prompt.endswith("## NOTES FROM PREVIOUS ITERATIONS (NOTES.md)\n\n- parser done\n- docs next\n")


def test_oversized_notes_keep_the_tail(tmp_path: Path) -> None:
    notes = tmp_path / "NOTES.md"
    notes.write_text("a" * MAX_NOTES_CHARS + "LATEST", "utf-8")

    prompt = build_iteration_prompt(user_prompt="x", completion_signal="S", notes_file=notes)

    assert "[earlier notes truncated]" in prompt
    assert prompt.rstrip().endswith("LATEST")
