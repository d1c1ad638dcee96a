"""CLI channel — reads lines from stdin, prints replies to stdout.

Learn: Reading stdin blocks, so a daemon thread does the reading and hands
each line to the event loop through an asyncio.Queue
(loop.call_soon_threadsafe). A daemon thread never holds the process open
once the gateway has shut down, even while it sits in readline().
"""

import asyncio
import sys
import threading
from typing import Optional, TextIO

import structlog

from clawgate.channels.base import Channel, MessageHandler

logger = structlog.get_logger()

SENDER_ID = "cli-user"
PROMPT = "You > "
QUIT_WORDS = ("quit", "exit")


class CliChannel(Channel):
    """Interactive terminal chat. One sender: 'cli-user'."""

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._lines: asyncio.Queue = asyncio.Queue()
        self._running = False

    @property
    def id(self) -> str:
        return "cli"

    def _write(self, text: str) -> None:
        self._stdout.write(text)
        self._stdout.flush()

    def _read_lines(self, loop: asyncio.AbstractEventLoop) -> None:
        # None marks end of input
        for line in iter(self._stdin.readline, ""):
            loop.call_soon_threadsafe(self._lines.put_nowait, line)
        loop.call_soon_threadsafe(self._lines.put_nowait, None)

    async def start(self, handler: MessageHandler) -> None:
        self._running = True
        loop = asyncio.get_running_loop()
        reader = threading.Thread(
            target=self._read_lines, args=(loop,), name="cli-stdin", daemon=True
        )
        reader.start()

        self._write("clawgate CLI — type your message (or 'quit' to exit)\n")
        self._write("─" * 50 + "\n")

        while self._running:
            self._write(f"\n{PROMPT}")
            line = await self._lines.get()
            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            if text.lower() in QUIT_WORDS:
                self._write("Bye!\n")
                break

            reply = await handler(SENDER_ID, text)
            self._write(f"\nAgent > {reply}\n")

        self._running = False
        logger.info("channels.cli_closed")

    async def stop(self) -> None:
        self._running = False
        # Wake a start() waiting for input
        self._lines.put_nowait(None)
