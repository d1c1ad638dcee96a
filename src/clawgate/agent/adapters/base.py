"""Agent adapter base — pluggable interface to the external agent runtime.

Learn: clawgate doesn't run a model or a tool-calling loop itself. Each
agent turn is handed to an adapter that drives an existing runtime (Claude
Code CLI, Codex CLI, ...) as an opaque black box: prompt in, reply text out
(or failure).

Each adapter knows how to:
1. Spawn its runtime as a subprocess
2. Pass the agent instruction and conversation identity
3. Handle timeouts, cancellation and cleanup

The subprocess pattern: asyncio.create_subprocess_exec + asyncio.wait_for,
kill on timeout. Cancellation (the dispatcher's turn timeout) also kills
the child — best effort, the runtime may already have side effects.
"""

import asyncio
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class AdapterConfig:
    """Everything an adapter needs for one turn.

    Learn: This is a value object built per turn by the agent handle.
    """

    # Identity
    agent_id: str
    session_key: str

    # Agent definition
    instruction: str = ""
    model: Optional[str] = None
    working_directory: Optional[str] = None

    # Stable UUID for the transcript (changes when it is cleared) and
    # whether the runtime already saw earlier turns of it
    conversation_id: Optional[str] = None
    resume: bool = False

    # Limits
    timeout_seconds: float = 60.0

    # Extra env vars for the subprocess
    env_overrides: dict[str, str] = field(default_factory=dict)


@dataclass
class AdapterResult:
    """Structured result from one runtime invocation."""

    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and self.error is None

    @property
    def text(self) -> str:
        return self.stdout.strip()


class AgentAdapter(ABC):
    """Abstract base for agent runtime adapters.

    Learn: Implement this to plug in a new runtime, then
    register_adapter("name", MyAdapter) and reference it from an agent's
    "adapter" field in the config file.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter identifier, e.g. 'claude_code', 'codex', 'echo'."""

    @abstractmethod
    async def run(self, prompt: str, config: AdapterConfig) -> AdapterResult:
        """Execute one agent turn for `prompt`.

        Must handle:
        - Building the runtime invocation
        - Passing instruction / model / conversation identity
        - Timeout and cancellation
        - Returning a structured AdapterResult
        """

    def validate_environment(self) -> tuple[bool, str]:
        """Check if this adapter's runtime is installed.

        Returns (is_valid, message). Override to check for
        specific binaries on PATH.
        """
        return True, "ok"

    async def _run_subprocess(
        self,
        cmd: list[str],
        config: AdapterConfig,
    ) -> AdapterResult:
        """Helper: run a subprocess with timeout and cancellation handling.

        All adapters should use this instead of reimplementing subprocess logic.
        """
        env = {**os.environ, **config.env_overrides}
        cwd = config.working_directory
        if cwd:
            os.makedirs(cwd, exist_ok=True)

        start_time = time.monotonic()
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(),
                timeout=config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()  # ensure process is reaped
            duration = time.monotonic() - start_time
            return AdapterResult(
                exit_code=-1,
                stdout="",
                stderr="",
                duration_seconds=duration,
                error=f"Agent timed out after {config.timeout_seconds:.0f}s",
            )
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await asyncio.shield(proc.wait())  # reap before propagating
            raise

        duration = time.monotonic() - start_time
        stdout = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
        stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""

        error = None
        if proc.returncode != 0:
            detail = stderr.strip() or stdout.strip()
            error = f"Process exited with code {proc.returncode}"
            if detail:
                error = f"{error}: {detail[:500]}"

        return AdapterResult(
            exit_code=proc.returncode or 0,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
            error=error,
        )
