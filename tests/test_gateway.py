"""Gateway tests — routing fallback, session keys, chat commands, persistence."""

import asyncio
import json
import os
import signal

import pytest

from clawgate.channels import Channel
from clawgate.cli.main import _install_signal_handlers, _remove_signal_handlers
from clawgate.gateway import NEW_SESSION_REPLY, NO_SKILLS_REPLY, SKILL_USAGE_REPLY, Gateway
from clawgate.routing import MessageContext

from conftest import make_config, write_skill


class FakeChannel(Channel):
    """Sends scripted messages through the handler, then finishes."""

    def __init__(self, channel_id, messages):
        self._id = channel_id
        self.messages = messages
        self.replies = []
        self.stopped = False

    @property
    def id(self):
        return self._id

    async def start(self, handler):
        for sender, text in self.messages:
            self.replies.append(await handler(sender, text))

    async def stop(self):
        self.stopped = True


class IdleChannel(FakeChannel):
    """Runs until stopped."""

    def __init__(self, channel_id):
        super().__init__(channel_id, [])
        self._done = asyncio.Event()

    async def start(self, handler):
        await self._done.wait()

    async def stop(self):
        self.stopped = True
        self._done.set()


# ─── Message pipeline ─────────────────────────────────────


@pytest.mark.asyncio
async def test_handle_message_round_trip(gateway, recorder):
    reply = await gateway.handle_message(MessageContext.direct("cli", "cli-user"), "hello")

    assert reply == "echo:hello"
    assert recorder.calls == [("agent:assistant:main", "hello")]


@pytest.mark.asyncio
async def test_bindings_pick_agent_and_scope_sessions(tmp_path, recorder):
    config = make_config(
        tmp_path,
        agents=[{"id": "assistant", "adapter": "recording"}, {"id": "web", "adapter": "recording"}],
        bindings=[{"match": {"channel": "webchat"}, "agentId": "web"}],
        dm_scope="per-channel-peer",
    )
    gw = Gateway(config)
    try:
        await gw.handle_message(MessageContext.direct("webchat", "u1"), "a")
        await gw.handle_message(MessageContext.direct("cli", "u2"), "b")
    finally:
        await gw.close()

    assert recorder.calls == [
        ("agent:web:webchat:direct:u1", "a"),
        ("agent:assistant:cli:direct:u2", "b"),
    ]


@pytest.mark.asyncio
async def test_unknown_routed_agent_falls_back_to_default(tmp_path, recorder):
    config = make_config(tmp_path, bindings=[{"match": {"channel": "cli"}, "agentId": "ghost"}])
    gw = Gateway(config)
    try:
        reply = await gw.handle_message(MessageContext.direct("cli", "u"), "hi")
    finally:
        await gw.close()

    assert reply == "echo:hi"
    assert recorder.calls[0][0] == "agent:assistant:main"


@pytest.mark.asyncio
async def test_unknown_default_agent_is_a_turn_error(tmp_path, recorder):
    config = make_config(tmp_path, default="nobody")
    gw = Gateway(config)
    try:
        reply = await gw.handle_message(MessageContext.direct("cli", "u"), "hi")
    finally:
        await gw.close()

    assert reply == "[error] Unknown agent: nobody"


@pytest.mark.asyncio
async def test_handler_for_builds_direct_context(gateway, recorder):
    handler = gateway.handler_for("webchat")
    assert await handler("web-user", "ping") == "echo:ping"


@pytest.mark.asyncio
async def test_persist_on_turn_writes_transcript(tmp_path, recorder):
    gw = Gateway(make_config(tmp_path, persist=True))
    try:
        await gw.handle_message(MessageContext.direct("cli", "u"), "save me")
    finally:
        await gw.close()

    path = tmp_path / "sessions" / "agent_assistant_main.jsonl"
    records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [r["content"] for r in records] == ["save me", "echo:save me"]


# ─── Chat commands ────────────────────────────────────────


@pytest.mark.asyncio
async def test_new_command_clears_session(gateway, recorder):
    ctx = MessageContext.direct("cli", "u")
    await gateway.handle_message(ctx, "remember this")
    assert len(gateway.sessions.get_history("agent:assistant:main")) == 2

    assert await gateway.handle_message(ctx, "/new") == NEW_SESSION_REPLY
    assert gateway.sessions.get_history("agent:assistant:main") == ()
    assert len(recorder.calls) == 1


@pytest.mark.asyncio
async def test_new_during_running_turn_starts_clean(gateway, recorder):
    recorder.delays["slow"] = 0.3
    ctx = MessageContext.direct("cli", "u")

    turn = asyncio.create_task(gateway.handle_message(ctx, "slow"))
    await asyncio.sleep(0.05)
    assert await gateway.handle_message(ctx, "/new") == NEW_SESSION_REPLY
    assert await turn == "echo:slow"

    assert gateway.sessions.get_history("agent:assistant:main") == ()
    await gateway.handle_message(ctx, "fresh start")
    assert recorder.configs[-1].resume is False
    assert [e.role for e in gateway.sessions.get_history("agent:assistant:main")] == [
        "user",
        "assistant",
    ]


@pytest.mark.asyncio
async def test_skills_command(tmp_path, skills_root, recorder):
    gw = Gateway(make_config(tmp_path))
    ctx = MessageContext.direct("cli", "u")
    try:
        assert await gw.handle_message(ctx, "/skills") == NO_SKILLS_REPLY

        write_skill(skills_root, "sum", "sum", "Summarize")
        gw.catalog.rescan()
        assert await gw.handle_message(ctx, "/skills") == "- sum: Summarize"
    finally:
        await gw.close()


@pytest.mark.asyncio
async def test_skill_command_injects_body(tmp_path, skills_root, recorder):
    write_skill(skills_root, "sum", "sum", "Summarize", body="Write three bullets.")
    gw = Gateway(make_config(tmp_path))
    ctx = MessageContext.direct("cli", "u")
    try:
        await gw.handle_message(ctx, "/skill sum the quarterly report")
        assert await gw.handle_message(ctx, "/skill sum") == SKILL_USAGE_REPLY
        assert await gw.handle_message(ctx, "/skill nope do it") == "[error] Unknown skill: nope"
    finally:
        await gw.close()

    assert len(recorder.calls) == 1
    prompt = recorder.calls[0][1]
    assert "Write three bullets." in prompt
    assert prompt.endswith("Request:\nthe quarterly report")


@pytest.mark.asyncio
async def test_unknown_slash_word_is_a_normal_message(gateway, recorder):
    assert await gateway.handle_message(MessageContext.direct("cli", "u"), "/shrug") == "echo:/shrug"


# ─── Lifecycle ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_serve_runs_channels_and_closes(tmp_path, recorder):
    gw = Gateway(make_config(tmp_path))
    talker = FakeChannel("cli", [("cli-user", "one"), ("cli-user", "two")])
    idle = IdleChannel("webchat")

    await asyncio.wait_for(gw.serve([talker, idle]), timeout=5)

    assert talker.replies == ["echo:one", "echo:two"]
    # First channel to finish winds down the others
    assert idle.stopped
    assert gw.scheduler.closed


@pytest.mark.asyncio
async def test_request_stop_ends_serve(tmp_path, recorder):
    gw = Gateway(make_config(tmp_path))
    idle = IdleChannel("webchat")

    serving = asyncio.create_task(gw.serve([idle]))
    await asyncio.sleep(0.05)
    gw.request_stop()
    await asyncio.wait_for(serving, timeout=5)

    assert idle.stopped


def test_status_snapshot(tmp_path, recorder):
    gw = Gateway(make_config(tmp_path))
    status = gw.status()
    assert status["agents"] == ["assistant"]
    assert status["default_agent"] == "assistant"
    assert status["scheduler"]["max_concurrent"] == 4


@pytest.mark.asyncio
async def test_sigterm_drains_and_stops_serve(tmp_path, recorder):
    recorder.delays["in-flight"] = 0.2
    gw = Gateway(make_config(tmp_path, shutdown_timeout=5))
    idle = IdleChannel("webchat")

    signals = _install_signal_handlers(gw.request_stop)
    try:
        assert signal.SIGTERM in signals
        serving = asyncio.create_task(gw.serve([idle]))
        await asyncio.sleep(0.05)
        turn = asyncio.create_task(
            gw.handle_message(MessageContext.direct("cli", "u"), "in-flight")
        )
        await asyncio.sleep(0.05)

        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(serving, timeout=5)
    finally:
        _remove_signal_handlers(signals)

    # The running turn finished before the scheduler closed
    assert await turn == "echo:in-flight"
    assert idle.stopped
    assert gw.scheduler.closed
