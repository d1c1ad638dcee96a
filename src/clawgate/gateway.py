"""Gateway — wires transports, routing, sessions, skills and agents together.

Learn: One inbound message flows through the whole pipeline:

  transport → route (agent id) → session key → scheduler → reply

The gateway owns every long-lived component (catalog, watcher, session
store, agent directory, scheduler) and is the only object transports talk
to. handle_message() never raises: failures come back as "[error] ..."
reply text, so a transport can always answer its user.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

import structlog

from clawgate.agent import AgentDirectory
from clawgate.config import GatewayConfig
from clawgate.dispatcher import SchedulerConfig, TurnScheduler
from clawgate.routing import MessageContext, RouteResolver
from clawgate.sessions import SessionStore
from clawgate.skills import SkillCatalog, SkillWatcher

logger = structlog.get_logger()

MessageHandler = Callable[[str, str], Awaitable[str]]

NEW_SESSION_REPLY = "Started a new conversation."
NO_SKILLS_REPLY = "No skills available."
SKILL_USAGE_REPLY = "Usage: /skill <name> <message>"


@dataclass
class CommandOutcome:
    """A direct reply, a rewritten message for the turn, or neither."""

    reply: Optional[str] = None
    message: Optional[str] = None


class Gateway:
    """Central orchestrator: one instance per running process."""

    def __init__(self, config: GatewayConfig):
        self.config = config
        self.catalog = SkillCatalog(config.skills.directory)
        self.sessions = SessionStore(config.session.store, config.session.dm_scope)
        self.router = RouteResolver(config.bindings, config.agents.default_agent)
        self.directory = AgentDirectory(config, self.catalog)
        self.scheduler = TurnScheduler(
            self.directory,
            self.sessions,
            SchedulerConfig.from_gateway_config(config),
        )
        self.watcher: Optional[SkillWatcher] = None
        if config.skills.watch:
            self.watcher = SkillWatcher(self.catalog, config.skills.debounce_seconds)

        self._channels: list = []
        self._stop_requested = asyncio.Event()
        self._closed = False

    # ─── Message pipeline ─────────────────────────────────

    def route(self, ctx: MessageContext) -> str:
        """Target agent for `ctx`, falling back to the default agent."""
        agent_id = self.router.resolve(ctx)
        if not self.directory.has_agent(agent_id):
            default = self.config.agents.default_agent
            logger.warning("gateway.unknown_agent", agent_id=agent_id, fallback=default)
            agent_id = default
        return agent_id

    async def handle_message(self, ctx: MessageContext, text: str) -> str:
        """Route, run and answer one inbound message."""
        agent_id = self.route(ctx)
        session_key = self.sessions.resolve_session_key(
            agent_id, ctx.channel, ctx.peer_kind, ctx.peer_id
        )
        logger.debug(
            "gateway.message",
            channel=ctx.channel,
            sender_id=ctx.sender_id,
            agent_id=agent_id,
            session_key=session_key,
        )

        outcome = await self._handle_command(agent_id, session_key, text)
        if outcome.reply is not None:
            return outcome.reply
        message = outcome.message if outcome.message is not None else text

        result = await self.scheduler.run(agent_id, session_key, message)

        if self.config.session.persist_on_turn:
            try:
                await self.scheduler.persist_session(session_key)
            except Exception:
                logger.exception("gateway.persist_failed", session_key=session_key)

        return result.reply

    async def _handle_command(self, agent_id: str, session_key: str, text: str) -> CommandOutcome:
        """Chat commands: /new, /skills, /skill <name> <message>."""
        stripped = text.strip()
        if not stripped.startswith("/"):
            return CommandOutcome()

        command, _, rest = stripped.partition(" ")
        if command == "/new":
            # Waits for turns already running or queued on this session
            await self.scheduler.clear_session(session_key)
            logger.info("gateway.session_cleared", session_key=session_key)
            return CommandOutcome(reply=NEW_SESSION_REPLY)

        if command == "/skills":
            skills = self.directory.skills_for(agent_id)
            if not skills:
                return CommandOutcome(reply=NO_SKILLS_REPLY)
            return CommandOutcome(
                reply="\n".join(f"- {s.name}: {s.description}" for s in skills)
            )

        if command == "/skill":
            name, _, request = rest.strip().partition(" ")
            if not name or not request.strip():
                return CommandOutcome(reply=SKILL_USAGE_REPLY)
            body = self.directory.activate_skill(agent_id, name)
            if body is None:
                return CommandOutcome(reply=f"[error] Unknown skill: {name}")
            logger.info("gateway.skill_activated", agent_id=agent_id, skill=name)
            return CommandOutcome(
                message=(
                    f"Use the '{name}' skill. Its instructions:\n\n{body.strip()}"
                    f"\n\nRequest:\n{request.strip()}"
                )
            )

        # Unknown slash-words are ordinary messages
        return CommandOutcome()

    def handler_for(self, channel_id: str) -> MessageHandler:
        """The (sender_id, text) → reply callable for a transport."""

        async def handler(sender_id: str, text: str) -> str:
            return await self.handle_message(MessageContext.direct(channel_id, sender_id), text)

        return handler

    # ─── Lifecycle ────────────────────────────────────────

    def request_stop(self) -> None:
        """Ask serve() to wind down (used by the webchat admin API)."""
        logger.info("gateway.stop_requested")
        self._stop_requested.set()

    async def serve(self, channels: Sequence) -> None:
        """Run all channels until one finishes or a stop is requested."""
        self._channels = list(channels)
        logger.info(
            "gateway.starting",
            channels=[c.id for c in self._channels],
            default_agent=self.config.agents.default_agent,
            agents=self.directory.agent_ids(),
            skills=len(self.catalog),
        )
        if self.watcher is not None:
            self.watcher.start()

        tasks = [
            asyncio.create_task(c.start(self.handler_for(c.id)), name=f"channel:{c.id}")
            for c in self._channels
        ]
        stop_waiter = asyncio.create_task(self._stop_requested.wait())
        try:
            done, _ = await asyncio.wait(
                [*tasks, stop_waiter], return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task is not stop_waiter and not task.cancelled() and task.exception():
                    logger.error(
                        "gateway.channel_failed",
                        channel=task.get_name(),
                        error=str(task.exception()),
                    )
        finally:
            await self.close()
            for task in [*tasks, stop_waiter]:
                task.cancel()
            await asyncio.gather(*tasks, stop_waiter, return_exceptions=True)

    async def close(self) -> None:
        """Stop channels, drain the scheduler, stop the watcher."""
        if self._closed:
            return
        self._closed = True
        logger.info("gateway.shutdown")

        for channel in self._channels:
            try:
                await channel.stop()
            except Exception:
                logger.exception("gateway.channel_stop_failed", channel=channel.id)

        await self.scheduler.shutdown(self.config.gateway.shutdown_timeout_seconds)

        if self.watcher is not None:
            await self.watcher.stop()

    def status(self) -> dict:
        """Snapshot for the health endpoint."""
        return {
            "agents": self.directory.agent_ids(),
            "default_agent": self.config.agents.default_agent,
            "skills": self.catalog.names(),
            "skills_version": self.catalog.version,
            "scheduler": self.scheduler.get_stats(),
        }
