"""Echo adapter — in-process runtime that repeats the message back.

Useful for trying the gateway (routing, sessions, transports) without any
agent CLI installed.
"""

import time

from clawgate.agent.adapters.base import AdapterConfig, AdapterResult, AgentAdapter


class EchoAdapter(AgentAdapter):
    """Replies with `[<agent_id>] <message>`."""

    @property
    def name(self) -> str:
        return "echo"

    async def run(self, prompt: str, config: AdapterConfig) -> AdapterResult:
        start = time.monotonic()
        return AdapterResult(
            exit_code=0,
            stdout=f"[{config.agent_id}] {prompt}",
            stderr="",
            duration_seconds=time.monotonic() - start,
        )
