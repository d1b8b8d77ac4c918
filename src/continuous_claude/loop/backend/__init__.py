"""Agent backend implementations."""

from continuous_claude.loop.backend.base import AgentBackend, AgentRunRequest, AgentRunResult
from continuous_claude.loop.backend.cli_backend import BackendRunError, CliAgentBackend

__all__ = [
    "AgentBackend",
    "AgentRunRequest",
    "AgentRunResult",
    "BackendRunError",
    "CliAgentBackend",
]
