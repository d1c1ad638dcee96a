"""Claude Code adapter — runs the Claude Code CLI as the agent runtime.

Learn: Claude Code supports:
- --print: Non-interactive mode (reads prompt, works, prints output, exits)
- --session-id / --resume: keep the runtime's own conversation state
- --append-system-prompt: extra instructions on top of its defaults
- --max-turns: Safety limit on agentic loop iterations

The first turn of a conversation creates the runtime session with a
deterministic UUID; later turns resume it, so the runtime keeps context
while clawgate keeps the transcript.
"""

import shutil

from clawgate.agent.adapters.base import AdapterConfig, AdapterResult, AgentAdapter


class ClaudeCodeAdapter(AgentAdapter):
    """Adapter for Claude Code CLI (claude command)."""

    max_turns = 50

    @property
    def name(self) -> str:
        return "claude_code"

    def validate_environment(self) -> tuple[bool, str]:
        """Check that the `claude` binary is available."""
        if shutil.which("claude"):
            return True, "Claude Code CLI found"
        return (
            False,
            "Claude Code CLI not found on PATH. "
            "Install with: npm install -g @anthropic-ai/claude-code",
        )

    def build_command(self, prompt: str, config: AdapterConfig) -> list[str]:
        cmd = [
            "claude",
            "--print",  # Non-interactive: print result and exit
            "--output-format",
            "text",
            "--max-turns",
            str(self.max_turns),
        ]
        if config.conversation_id:
            flag = "--resume" if config.resume else "--session-id"
            cmd.extend([flag, config.conversation_id])
        if config.model:
            cmd.extend(["--model", config.model])
        if config.instruction:
            cmd.extend(["--append-system-prompt", config.instruction])
        cmd.append(prompt)
        return cmd

    async def run(self, prompt: str, config: AdapterConfig) -> AdapterResult:
        """Spawn `claude --print` for one turn."""
        return await self._run_subprocess(self.build_command(prompt, config), config)
