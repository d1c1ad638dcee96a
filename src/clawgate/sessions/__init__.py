"""Session keys and transcript store."""

from clawgate.sessions.store import (
    SessionEntry,
    SessionStore,
    resolve_session_key,
    session_filename,
)

__all__ = ["SessionEntry", "SessionStore", "resolve_session_key", "session_filename"]
