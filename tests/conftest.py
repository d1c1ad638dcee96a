"""Test fixtures — config documents, skill trees, and an in-process adapter.

Learn: Testing pattern for the turn pipeline without any agent CLI:

1. RecordingAdapter is registered under the adapter name "recording" for
   the duration of a test. It records every call and tracks how many
   turns run at the same time.
2. Per-prompt delays / replies / failures are set on the instance, so a
   test can script slow, failing or empty turns.
3. make_config() builds a validated GatewayConfig whose paths all live
   under tmp_path.
"""

import asyncio
import time
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio

from clawgate.agent.adapters import (
    AdapterConfig,
    AdapterResult,
    AgentAdapter,
    register_adapter,
    unregister_adapter,
)
from clawgate.config import GatewayConfig, parse_config


class RecordingAdapter(AgentAdapter):
    """Scriptable adapter that records calls and concurrency."""

    def __init__(self):
        self.delay = 0.0
        self.delays: dict[str, float] = {}
        self.replies: dict[str, str] = {}
        self.failures: dict[str, str] = {}
        self.raises: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.configs: list[AdapterConfig] = []
        self.events: list[tuple[str, str, str, float]] = []
        self.active = 0
        self.max_active = 0
        self.cancelled: list[str] = []

    @property
    def name(self) -> str:
        return "recording"

    async def run(self, prompt: str, config: AdapterConfig) -> AdapterResult:
        self.calls.append((config.session_key, prompt))
        self.configs.append(config)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.events.append(("start", config.session_key, prompt, time.monotonic()))
        start = time.monotonic()
        try:
            await asyncio.sleep(self.delays.get(prompt, self.delay))
            if prompt in self.raises:
                raise self.raises[prompt]
            if prompt in self.failures:
                return AdapterResult(
                    exit_code=1,
                    stdout="",
                    stderr=self.failures[prompt],
                    duration_seconds=time.monotonic() - start,
                    error=self.failures[prompt],
                )
            return AdapterResult(
                exit_code=0,
                stdout=self.replies.get(prompt, f"echo:{prompt}"),
                stderr="",
                duration_seconds=time.monotonic() - start,
            )
        except asyncio.CancelledError:
            self.cancelled.append(prompt)
            raise
        finally:
            self.active -= 1
            self.events.append(("end", config.session_key, prompt, time.monotonic()))


@pytest.fixture()
def recorder():
    """A RecordingAdapter registered as "recording" for this test only."""
    adapter = RecordingAdapter()
    register_adapter("recording", lambda: adapter)
    yield adapter
    unregister_adapter("recording")


def write_skill(root: Path, dirname: str, name: Optional[str], description: Optional[str], body: str = "") -> Path:
    """Create <root>/<dirname>/SKILL.md with the given front-matter fields."""
    directory = root / dirname
    directory.mkdir(parents=True, exist_ok=True)
    lines = ["---"]
    if name is not None:
        lines.append(f"name: {name}")
    if description is not None:
        lines.append(f"description: {description}")
    lines.append("---")
    lines.append(body)
    (directory / "SKILL.md").write_text("\n".join(lines), encoding="utf-8")
    return directory


@pytest.fixture()
def skills_root(tmp_path):
    root = tmp_path / "skills"
    root.mkdir()
    return root


def make_config(
    tmp_path: Path,
    *,
    agents: Optional[list[dict]] = None,
    bindings: Optional[list[dict]] = None,
    default: str = "assistant",
    max_concurrent: int = 4,
    timeout: float = 60,
    shutdown_timeout: float = 1,
    dm_scope: str = "main",
    persist: bool = False,
    watch: bool = False,
    admin_token: str = "secret-token",
) -> GatewayConfig:
    """Validated config with every path under tmp_path."""
    if agents is None:
        agents = [{"id": "assistant", "adapter": "recording"}]
    return parse_config(
        {
            "gateway": {
                "adminToken": admin_token,
                "agentTimeoutSeconds": timeout,
                "shutdownTimeoutSeconds": shutdown_timeout,
            },
            "agents": {
                "default": default,
                "list": agents,
                "defaults": {"maxConcurrent": max_concurrent},
            },
            "bindings": bindings or [],
            "session": {
                "store": str(tmp_path / "sessions"),
                "dmScope": dm_scope,
                "persistOnTurn": persist,
            },
            "skills": {"dir": str(tmp_path / "skills"), "watch": watch, "debounceSeconds": 0.05},
        }
    )


@pytest_asyncio.fixture()
async def gateway(tmp_path, recorder):
    """Gateway over the recording adapter; closed after the test."""
    from clawgate.gateway import Gateway

    gw = Gateway(make_config(tmp_path))
    yield gw
    await gw.close()
