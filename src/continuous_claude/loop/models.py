"""Domain models for the iteration loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class OutcomeKind(str, Enum):
    """Classification of one agent invocation."""

    SUCCESS = "success"
    AGENT_ERROR = "agent_error"
    EXIT_CODE_ERROR = "exit_code_error"


class LoopState(str, Enum):
    """Main loop states; everything but RUNNING is terminal."""

    RUNNING = "running"
    TERMINATED_BUDGET = "terminated_budget"
    TERMINATED_SIGNAL = "terminated_signal"
    TERMINATED_ERROR = "terminated_error"


@dataclass(slots=True)
class AgentResult:
    """Raw bundle produced by one executor call."""

    raw_output: str
    exit_code: int
    stderr_capture: str = ""


@dataclass(slots=True)
class StructuredOutput:
    """Agent stdout that parsed as a JSON object."""

    fields: dict[str, Any]
    raw: str


@dataclass(slots=True)
class PlainTextOutput:
    """Agent stdout that is not a JSON object."""

    text: str


ParsedOutput = StructuredOutput | PlainTextOutput


@dataclass(slots=True)
class ClassifiedResult:
    """Outcome kind plus the values extracted for the transcript."""

    outcome_kind: OutcomeKind
    display_text: str
    cost: float | None = None

    @property
    def is_success(self) -> bool:
        return self.outcome_kind == OutcomeKind.SUCCESS


@dataclass(slots=True)
class IterationContext:
    """Mutable run state, threaded through every loop cycle."""

    iteration_index: int = 1
    extra_iterations: int = 0
    total_cost: float = 0.0
    completion_signal_count: int = 0
    consecutive_failures: int = 0
    successful_iterations: int = 0
    failed_iterations: int = 0
    state: LoopState = LoopState.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self.state != LoopState.RUNNING

    @property
    def iterations_attempted(self) -> int:
        return self.iteration_index - 1


@dataclass(slots=True)
class LoopSummary:
    """Final counters reported when the loop stops."""

    state: LoopState
    iterations: int
    successful_iterations: int
    failed_iterations: int
    total_cost: float
    completion_signal_count: int

    @property
    def success(self) -> bool:
        return self.state != LoopState.TERMINATED_ERROR
