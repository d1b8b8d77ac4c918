"""Deterministic classification of agent output for loop routing."""

from __future__ import annotations

import json
import math
from typing import Any

from continuous_claude.loop.models import (
    AgentResult,
    ClassifiedResult,
    OutcomeKind,
    ParsedOutput,
    PlainTextOutput,
    StructuredOutput,
)

RESULT_FIELD = "result"
ERROR_FLAG_FIELD = "is_error"
ERROR_MESSAGE_FIELD = "error"
COST_FIELD = "total_cost_usd"


def parse_agent_output(raw_output: str) -> ParsedOutput:
    """Split agent stdout into structured (JSON object) or plain text."""

    fields = _try_load_dict(raw_output)
    if fields is None:
        return PlainTextOutput(text=raw_output)
    return StructuredOutput(fields=fields, raw=raw_output)


def classify_agent_output(parsed: ParsedOutput, exit_code: int) -> ClassifiedResult:
    """Classify parsed output.

    A structured `is_error` flag is authoritative even on exit code 0; plain
    text falls back to the exit code.
    """

    if isinstance(parsed, StructuredOutput):
        if parsed.fields.get(ERROR_FLAG_FIELD) is True:
            return ClassifiedResult(
                outcome_kind=OutcomeKind.AGENT_ERROR,
                display_text=_first_present(structured_error_message(parsed), parsed.raw),
                cost=extract_cost(parsed),
            )
        return ClassifiedResult(
            outcome_kind=OutcomeKind.SUCCESS,
            display_text=_first_present(_field_text(parsed.fields, RESULT_FIELD), parsed.raw),
            cost=extract_cost(parsed),
        )

    return ClassifiedResult(
        outcome_kind=OutcomeKind.SUCCESS if exit_code == 0 else OutcomeKind.EXIT_CODE_ERROR,
        display_text=parsed.text,
    )


def classify_agent_result(result: AgentResult) -> ClassifiedResult:
    """Classify a raw executor bundle."""

    return classify_agent_output(parse_agent_output(result.raw_output), result.exit_code)


def parse_agent_result(raw_output: str, exit_code: int) -> OutcomeKind:
    """Return only the outcome kind for `(raw_output, exit_code)`."""

    return classify_agent_output(parse_agent_output(raw_output), exit_code).outcome_kind


def structured_error_message(parsed: ParsedOutput) -> str | None:
    """Return the message of a structured error payload, if there is one."""

    if not isinstance(parsed, StructuredOutput):
        return None
    if parsed.fields.get(ERROR_FLAG_FIELD) is not True:
        return None
    return _first_present(
        _field_text(parsed.fields, RESULT_FIELD),
        _field_text(parsed.fields, ERROR_MESSAGE_FIELD),
    )


def extract_cost(parsed: ParsedOutput) -> float | None:
    if not isinstance(parsed, StructuredOutput):
        return None
    value = parsed.fields.get(COST_FIELD)
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    try:
        cost = float(value)
    except OverflowError:
        return None
    if not math.isfinite(cost) or cost < 0:
        return None
    return cost


def _try_load_dict(raw: str) -> dict[str, Any] | None:
    if not raw.strip():
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _field_text(fields: dict[str, Any], name: str) -> str | None:
    value = fields.get(name)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _first_present(*values: str | None) -> str | None:
    for value in values:
        if value is not None:
            return value
    return None
