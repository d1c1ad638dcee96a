"""Turn scheduler — serialized per session, bounded globally.

Learn: Every inbound message becomes one agent turn. Two rules govern when
a turn may run:
1. Same session key → strictly one at a time, in arrival order
   (a per-key asyncio.Lock, FIFO for waiters)
2. All sessions together → at most max_concurrent turns executing
   (one asyncio.Semaphore permit per running body)

The lock is taken before the permit, so a queued turn for a busy session
never holds a permit while it waits.

Each turn body runs as its own asyncio.Task and is waited on with the agent
timeout. On timeout the body is cancelled (best effort: the adapter kills
its subprocess) and the caller gets a TurnTimeoutError result right away,
with the lock and permit already released.

Key design decisions:
- run() never raises for turn failures: every outcome is a TurnResult
- Lock entries are reference counted and dropped when the last holder or
  waiter leaves, so the map only holds sessions with turns in play
- No shared mutable state across loops: the scheduler lives on one loop
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from clawgate.agent import AgentDirectory, AgentHandle
from clawgate.config import GatewayConfig
from clawgate.sessions import SessionEntry, SessionStore

logger = logging.getLogger("clawgate.dispatcher")

NO_RESPONSE = "[no response from agent]"


# ─── Errors ───────────────────────────────────────────────


class TurnError(Exception):
    """Base class for turn failures reported through TurnResult."""

    def __init__(self, agent_id: str, message: str):
        self.agent_id = agent_id
        super().__init__(message)


class UnknownAgentError(TurnError):
    def __init__(self, agent_id: str):
        super().__init__(agent_id, f"Unknown agent: {agent_id}")


class TurnTimeoutError(TurnError):
    def __init__(self, agent_id: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            agent_id, f"Agent '{agent_id}' timed out after {timeout_seconds:.0f}s"
        )


class AgentExecutionError(TurnError):
    def __init__(self, agent_id: str, session_key: str, cause: BaseException):
        self.session_key = session_key
        self.cause = cause
        super().__init__(agent_id, f"Agent '{agent_id}' failed: {cause}")


class SchedulerClosedError(TurnError):
    def __init__(self, agent_id: str):
        super().__init__(agent_id, "Gateway is shutting down")


# ─── Value objects ────────────────────────────────────────


@dataclass
class SchedulerConfig:
    """Configuration for the turn scheduler."""
    max_concurrent: int = 4
    agent_timeout_seconds: float = 60.0
    shutdown_timeout_seconds: float = 10.0

    @classmethod
    def from_gateway_config(cls, config: GatewayConfig) -> "SchedulerConfig":
        return cls(
            max_concurrent=config.agents.defaults.max_concurrent,
            agent_timeout_seconds=config.gateway.agent_timeout_seconds,
            shutdown_timeout_seconds=config.gateway.shutdown_timeout_seconds,
        )


@dataclass
class SchedulerStats:
    """Runtime statistics for monitoring."""
    dispatched: int = 0
    completed: int = 0
    failed: int = 0
    timed_out: int = 0
    rejected: int = 0
    in_flight: set = field(default_factory=set)
    started_at: Optional[datetime] = None


@dataclass
class TurnResult:
    """Outcome of one turn. Exactly one of text / error is meaningful."""

    agent_id: str
    session_key: str
    ok: bool
    text: str = ""
    error: Optional[TurnError] = None
    duration_seconds: float = 0.0

    @property
    def reply(self) -> str:
        """What a transport shows the user."""
        if self.ok:
            return self.text
        return f"[error] {self.error}"


class _SessionLock:
    __slots__ = ("lock", "refs")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.refs = 0


# ─── Scheduler ────────────────────────────────────────────


class TurnScheduler:
    """Runs agent turns with per-session ordering and a global cap."""

    def __init__(
        self,
        directory: AgentDirectory,
        sessions: SessionStore,
        config: Optional[SchedulerConfig] = None,
    ):
        self.directory = directory
        self.sessions = sessions
        self.config = config or SchedulerConfig()
        self.semaphore = asyncio.Semaphore(self.config.max_concurrent)
        self.stats = SchedulerStats(started_at=datetime.now(timezone.utc))
        self._locks: dict[str, _SessionLock] = {}
        self._bodies: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def _session_guard(self, session_key: str):
        """Hold the session's lock; drop the entry when nobody needs it."""
        entry = self._locks.get(session_key)
        if entry is None:
            entry = self._locks[session_key] = _SessionLock()
        entry.refs += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.refs -= 1
            if entry.refs == 0 and self._locks.get(session_key) is entry:
                del self._locks[session_key]

    def _reject(self, error: TurnError, session_key: str, start: float) -> TurnResult:
        self.stats.rejected += 1
        return TurnResult(
            agent_id=error.agent_id,
            session_key=session_key,
            ok=False,
            error=error,
            duration_seconds=time.monotonic() - start,
        )

    async def run(self, agent_id: str, session_key: str, message: str) -> TurnResult:
        """Execute one turn and report its outcome.

        Learn: Only the caller's own cancellation propagates. Every other
        failure (unknown agent, timeout, runtime error) comes back as a
        TurnResult with ok=False.
        """
        start = time.monotonic()
        if self._closed:
            return self._reject(SchedulerClosedError(agent_id), session_key, start)

        handle = self.directory.get_agent(agent_id)
        if handle is None:
            logger.warning("Unknown agent %s (session=%s)", agent_id, session_key)
            return self._reject(UnknownAgentError(agent_id), session_key, start)

        async with self._session_guard(session_key):
            async with self.semaphore:
                # Shutdown may have started while this turn was queued
                if self._closed:
                    return self._reject(SchedulerClosedError(agent_id), session_key, start)
                return await self._dispatch(handle, session_key, message, start)

    async def _dispatch(
        self, handle: AgentHandle, session_key: str, message: str, start: float
    ) -> TurnResult:
        agent_id = handle.agent_id
        timeout = self.config.agent_timeout_seconds

        self.sessions.append(session_key, SessionEntry.user(message))
        history = self.sessions.get_history(session_key)

        body = asyncio.create_task(
            self._execute(handle, session_key, message, history),
            name=f"turn:{session_key}",
        )
        self._bodies.add(body)
        body.add_done_callback(self._bodies.discard)

        self.stats.dispatched += 1
        self.stats.in_flight.add(session_key)
        logger.info(
            "Dispatched turn for agent %s (session=%s, in_flight=%d)",
            agent_id,
            session_key,
            len(self.stats.in_flight),
        )
        try:
            done, _ = await asyncio.wait({body}, timeout=timeout)
        except asyncio.CancelledError:
            body.cancel()
            raise
        finally:
            self.stats.in_flight.discard(session_key)

        duration = time.monotonic() - start

        if not done:
            body.cancel()
            self.stats.timed_out += 1
            logger.warning(
                "Agent %s timed out after %.0fs (session=%s)", agent_id, timeout, session_key
            )
            return TurnResult(
                agent_id=agent_id,
                session_key=session_key,
                ok=False,
                error=TurnTimeoutError(agent_id, timeout),
                duration_seconds=duration,
            )

        if body.cancelled():
            # Cancelled by shutdown()
            self.stats.failed += 1
            return TurnResult(
                agent_id=agent_id,
                session_key=session_key,
                ok=False,
                error=SchedulerClosedError(agent_id),
                duration_seconds=duration,
            )

        exc = body.exception()
        if exc is not None:
            self.stats.failed += 1
            logger.error(
                "Agent %s failed (session=%s): %s", agent_id, session_key, exc
            )
            return TurnResult(
                agent_id=agent_id,
                session_key=session_key,
                ok=False,
                error=AgentExecutionError(agent_id, session_key, exc),
                duration_seconds=duration,
            )

        self.stats.completed += 1
        logger.info(
            "Agent %s completed (session=%s, %.1fs)", agent_id, session_key, duration
        )
        return TurnResult(
            agent_id=agent_id,
            session_key=session_key,
            ok=True,
            text=body.result(),
            duration_seconds=duration,
        )

    async def _execute(
        self,
        handle: AgentHandle,
        session_key: str,
        message: str,
        history: tuple[SessionEntry, ...],
    ) -> str:
        """Turn body: run the agent and record its reply."""
        reply = await handle.run_turn(session_key, message, history)
        text = (reply or "").strip() or NO_RESPONSE
        self.sessions.append(session_key, SessionEntry.assistant(text))
        return text

    # ─── Session maintenance ──────────────────────────────

    async def clear_session(self, session_key: str) -> None:
        """Empty a transcript once the session's running and queued turns are done."""
        async with self._session_guard(session_key):
            self.sessions.clear(session_key)
        logger.info("Cleared session %s", session_key)

    async def persist_session(self, session_key: str):
        """Export a transcript under the session lock (no permit needed).

        Learn: Exports for one key queue behind each other and behind that
        key's turns, so each write snapshots the latest transcript and an
        older snapshot can never replace a newer file.
        """
        async with self._session_guard(session_key):
            return await asyncio.to_thread(self.sessions.persist, session_key)

    # ─── Lifecycle ────────────────────────────────────────

    async def shutdown(self, grace: Optional[float] = None) -> None:
        """Refuse new turns, let running bodies finish, cancel stragglers."""
        if grace is None:
            grace = self.config.shutdown_timeout_seconds
        self._closed = True
        pending = set(self._bodies)
        logger.info("Scheduler shutting down (%d turns in flight)", len(pending))
        if not pending:
            return

        _, pending = await asyncio.wait(pending, timeout=grace)
        if pending:
            for body in pending:
                body.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Scheduler forced shutdown after %.0fs (%d turns cancelled)",
                grace,
                len(pending),
            )

    # ─── Stats endpoint ──────────────────────────────────

    def active_sessions(self) -> int:
        """Number of sessions with a turn running or queued."""
        return len(self._locks)

    def get_stats(self) -> dict:
        """Return scheduler statistics for monitoring."""
        return {
            "dispatched": self.stats.dispatched,
            "completed": self.stats.completed,
            "failed": self.stats.failed,
            "timed_out": self.stats.timed_out,
            "rejected": self.stats.rejected,
            "in_flight": len(self.stats.in_flight),
            "active_sessions": self.active_sessions(),
            "max_concurrent": self.config.max_concurrent,
            "started_at": (
                self.stats.started_at.isoformat()
                if self.stats.started_at
                else None
            ),
        }
