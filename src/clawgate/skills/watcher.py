"""Skill directory watcher — OS push events → debounced catalog rescans.

Learn: watchdog runs its Observer in a background thread. The handler never
touches the catalog; it only pushes a notification onto an asyncio.Queue
with loop.call_soon_threadsafe (no polling). One long-lived task consumes
the queue:

  1. block on queue.get()
  2. wait debounce_seconds so a burst of edits settles
  3. drain every pending notification
  4. rescan exactly once (in a worker thread — it's file I/O)

Cancelling the task stops the loop; stop() also stops the Observer.
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from clawgate.skills.catalog import SkillCatalog

logger = structlog.get_logger()

_IGNORE_PATTERNS = (".git/", "__pycache__/", ".pyc", ".swp", ".swx", ".tmp")


class SkillChangeHandler(FileSystemEventHandler):
    """Forwards filesystem events under the skills root to an asyncio queue."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
        self._loop = loop
        self._queue = queue

    @staticmethod
    def _should_ignore(path: str) -> bool:
        return path.endswith("~") or any(p in path for p in _IGNORE_PATTERNS)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return
        path = str(event.src_path)
        if self._should_ignore(path):
            return
        notification = {"type": event.event_type, "path": path}
        self._loop.call_soon_threadsafe(self._queue.put_nowait, notification)


class SkillWatcher:
    """Background task that keeps a SkillCatalog in sync with its directory."""

    def __init__(self, catalog: SkillCatalog, debounce_seconds: float = 0.5):
        self.catalog = catalog
        self.debounce_seconds = debounce_seconds
        self.queue: asyncio.Queue = asyncio.Queue()
        self.rescans = 0
        self._observer: Optional[Observer] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def drain(self) -> int:
        """Discard pending notifications. Returns how many were dropped."""
        drained = 0
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                return drained
            drained += 1

    async def run(self) -> None:
        """Consume notifications forever; one rescan per burst."""
        while True:
            first = await self.queue.get()
            if self.debounce_seconds:
                await asyncio.sleep(self.debounce_seconds)
            coalesced = 1 + self.drain()
            logger.info(
                "skills.directory_changed",
                trigger=first.get("path"),
                events=coalesced,
            )
            try:
                await asyncio.to_thread(self.catalog.rescan)
            except Exception:
                logger.exception("skills.rescan_failed", root=str(self.catalog.root))
            self.rescans += 1

    def start(self) -> bool:
        """Start the Observer thread and the consumer task.

        Returns False (and does nothing) when the skills root does not exist.
        Must be called from inside the running event loop.
        """
        if self.running:
            return True
        root: Path = self.catalog.root
        if not root.is_dir():
            logger.warning("skills.watch_disabled", root=str(root), reason="directory does not exist")
            return False

        loop = asyncio.get_running_loop()
        handler = SkillChangeHandler(loop, self.queue)
        observer = Observer()
        observer.schedule(handler, str(root), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        self._task = asyncio.create_task(self.run(), name="skill-watcher")
        logger.info("skills.watching", root=str(root))
        return True

    async def stop(self) -> None:
        """Cancel the consumer task and stop the Observer thread."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5.0)
            self._observer = None
        logger.debug("skills.watcher_stopped")
