"""Codex adapter — runs the OpenAI Codex CLI as the agent runtime.

Learn: `codex exec` is non-interactive and stateless per call, and it has
no dedicated system-prompt flag. The agent instruction is inlined above the
user message with explicit section headers.
"""

import shutil

from clawgate.agent.adapters.base import AdapterConfig, AdapterResult, AgentAdapter


class CodexAdapter(AgentAdapter):
    """Adapter for OpenAI Codex CLI."""

    @property
    def name(self) -> str:
        return "codex"

    def validate_environment(self) -> tuple[bool, str]:
        """Check that the `codex` binary is available."""
        if shutil.which("codex"):
            return True, "Codex CLI found"
        return (
            False,
            "Codex CLI not found on PATH. "
            "Install with: npm install -g @openai/codex",
        )

    @staticmethod
    def compose_prompt(prompt: str, instruction: str) -> str:
        if not instruction:
            return prompt
        return f"System instructions:\n{instruction}\n\nUser message:\n{prompt}"

    async def run(self, prompt: str, config: AdapterConfig) -> AdapterResult:
        cmd = ["codex", "exec", "--color", "never"]
        if config.model:
            cmd.extend(["--model", config.model])
        cmd.append(self.compose_prompt(prompt, config.instruction))
        return await self._run_subprocess(cmd, config)
