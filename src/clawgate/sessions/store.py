"""Session keys and conversation transcripts.

Learn: A session key is never created explicitly — it is always derived
from (agent, channel, peer kind, peer id, dm scope):

  group peer                      agent:{agent}:{channel}:group:{peer}
  dmScope="per-channel-peer"      agent:{agent}:{channel}:direct:{peer}
  otherwise                       agent:{agent}:main

The same key names both the transcript and the dispatcher's per-session
lock. Transcripts are append-only, in memory, and exported to JSONL on
demand (point-in-time export, not a write-ahead log).
"""

import json
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger()

DM_SCOPES = ("main", "per-channel-peer")
ROLES = ("user", "assistant", "system", "tool")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def resolve_session_key(
    agent_id: str,
    channel: str,
    peer_kind: Optional[str],
    peer_id: Optional[str],
    dm_scope: str = "main",
) -> str:
    """Derive the session key. Pure function of its five inputs."""
    if peer_kind == "group" and peer_id:
        return f"agent:{agent_id}:{channel}:group:{peer_id}"
    if dm_scope == "per-channel-peer" and peer_id:
        return f"agent:{agent_id}:{channel}:direct:{peer_id}"
    return f"agent:{agent_id}:main"


def session_filename(session_key: str) -> str:
    """File name for a persisted transcript (path-unsafe chars → '_')."""
    return _UNSAFE_FILENAME_CHARS.sub("_", session_key) + ".jsonl"


@dataclass(frozen=True)
class SessionEntry:
    """One immutable transcript record."""

    role: str
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown transcript role '{self.role}'")

    @classmethod
    def user(cls, content: str) -> "SessionEntry":
        return cls("user", content)

    @classmethod
    def assistant(cls, content: str) -> "SessionEntry":
        return cls("assistant", content)

    @classmethod
    def system(cls, content: str) -> "SessionEntry":
        return cls("system", content)

    @classmethod
    def tool(cls, content: str, tool_call_id: str, tool_name: str) -> "SessionEntry":
        return cls("tool", content, tool_call_id=tool_call_id, tool_name=tool_name)

    def to_record(self) -> dict:
        """Minimal JSON-ready record used by persist()."""
        record = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.tool_call_id is not None:
            record["toolCallId"] = self.tool_call_id
        if self.tool_name is not None:
            record["toolName"] = self.tool_name
        return record


class SessionStore:
    """In-memory transcripts keyed by session key, with JSONL export.

    Learn: One lock guards the key → log map (insert-if-absent) and every
    log has its own lock, so appends to unrelated sessions never contend.
    get_history() copies under the log's lock: readers get a consistent
    prefix, never a half-written entry.
    """

    def __init__(self, store_dir: str | Path, dm_scope: str = "main"):
        if dm_scope not in DM_SCOPES:
            raise ValueError(f"dm_scope must be one of {DM_SCOPES}, got '{dm_scope}'")
        self.store_dir = Path(store_dir).expanduser()
        self.dm_scope = dm_scope
        self._logs: dict[str, list[SessionEntry]] = {}
        self._log_locks: dict[str, threading.Lock] = {}
        self._map_lock = threading.Lock()

    def resolve_session_key(
        self,
        agent_id: str,
        channel: str,
        peer_kind: Optional[str],
        peer_id: Optional[str],
    ) -> str:
        return resolve_session_key(agent_id, channel, peer_kind, peer_id, self.dm_scope)

    # ─── Transcript ───────────────────────────────────────

    def _log_for(self, session_key: str) -> tuple[list[SessionEntry], threading.Lock]:
        with self._map_lock:
            log = self._logs.get(session_key)
            if log is None:
                log = self._logs[session_key] = []
                self._log_locks[session_key] = threading.Lock()
            return log, self._log_locks[session_key]

    def append(self, session_key: str, entry: SessionEntry) -> None:
        """Append to the session's log, creating it on first use."""
        log, lock = self._log_for(session_key)
        with lock:
            log.append(entry)

    def get_history(self, session_key: str) -> tuple[SessionEntry, ...]:
        """Ordered snapshot of the session's transcript."""
        with self._map_lock:
            log = self._logs.get(session_key)
            lock = self._log_locks.get(session_key)
        if log is None:
            return ()
        with lock:
            return tuple(log)

    def clear(self, session_key: str) -> None:
        """Drop the in-memory transcript (persisted files are kept)."""
        with self._map_lock:
            self._logs.pop(session_key, None)
            self._log_locks.pop(session_key, None)

    def keys(self) -> list[str]:
        with self._map_lock:
            return list(self._logs)

    # ─── Persistence ──────────────────────────────────────

    def session_path(self, session_key: str) -> Path:
        return self.store_dir / session_filename(session_key)

    def persist(self, session_key: str) -> Optional[Path]:
        """Export the current transcript to <store_dir>/<key>.jsonl.

        Learn: Atomic write (temp file + os.replace) so a crash mid-write
        never leaves a truncated file. I/O errors are logged and swallowed:
        the transcript stays in memory and the caller is not blocked.
        Returns the written path, or None on failure.
        """
        history = self.get_history(session_key)
        path = self.session_path(session_key)
        lines = [
            json.dumps(entry.to_record(), ensure_ascii=False) for entry in history
        ]
        content = "\n".join(lines) + ("\n" if lines else "")

        tmp_path = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning(
                "sessions.persist_failed",
                session_key=session_key,
                path=str(path),
                error=str(e),
            )
            if tmp_path:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            return None

        logger.debug("sessions.persisted", session_key=session_key, entries=len(history))
        return path
