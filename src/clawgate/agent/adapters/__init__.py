"""Agent adapter registry — pluggable agent runtimes.

Learn: clawgate dispatches each turn to an external runtime via an adapter.
The registry provides a simple interface:
    adapter = get_adapter("claude_code")
    result = await adapter.run(prompt, config)

Agents pick their adapter in the config file:
    {"id": "assistant", "adapter": "claude_code"}
"""

from typing import Callable

from clawgate.agent.adapters.base import (
    AdapterConfig,
    AdapterResult,
    AgentAdapter,
)
from clawgate.agent.adapters.claude_code import ClaudeCodeAdapter
from clawgate.agent.adapters.codex import CodexAdapter
from clawgate.agent.adapters.echo import EchoAdapter

__all__ = [
    "AgentAdapter",
    "AdapterConfig",
    "AdapterResult",
    "get_adapter",
    "list_adapters",
    "register_adapter",
    "unregister_adapter",
]

AdapterFactory = Callable[[], AgentAdapter]

# ─── Registry ──────────────────────────────────────────────

_ADAPTERS: dict[str, AdapterFactory] = {
    "claude_code": ClaudeCodeAdapter,
    "codex": CodexAdapter,
    "echo": EchoAdapter,
}


def get_adapter(name: str) -> AgentAdapter:
    """Get an adapter instance by name.

    Raises ValueError if the adapter is not registered.
    """
    factory = _ADAPTERS.get(name)
    if not factory:
        available = ", ".join(sorted(_ADAPTERS.keys()))
        raise ValueError(f"Unknown adapter '{name}'. Available: {available}")
    return factory()


def list_adapters() -> list[str]:
    """List registered adapter names."""
    return sorted(_ADAPTERS.keys())


def register_adapter(name: str, factory: AdapterFactory) -> None:
    """Register a custom adapter.

    Learn: Any zero-argument callable returning an AgentAdapter works —
    usually the class itself:
        register_adapter("my_runtime", MyRuntimeAdapter)
    """
    _ADAPTERS[name] = factory


def unregister_adapter(name: str) -> None:
    """Remove a registered adapter (no-op when absent)."""
    _ADAPTERS.pop(name, None)
