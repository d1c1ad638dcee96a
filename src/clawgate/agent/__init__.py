"""Agents — configured definitions bound to pluggable runtime adapters."""

from clawgate.agent.directory import (
    AgentDirectory,
    AgentHandle,
    AgentRuntimeError,
    build_instruction,
)

__all__ = ["AgentDirectory", "AgentHandle", "AgentRuntimeError", "build_instruction"]
