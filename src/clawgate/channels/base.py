"""Channel base — the surface through which users talk to agents.

Learn: A channel owns its I/O loop. start(handler) runs until the channel is
done (stdin closed, server stopped) and calls `await handler(sender_id,
text)` for every inbound message, getting the reply string back. stop()
asks a running channel to finish; start() then returns.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

MessageHandler = Callable[[str, str], Awaitable[str]]


class Channel(ABC):
    """Abstract base for message transports."""

    @property
    @abstractmethod
    def id(self) -> str:
        """Channel identifier, e.g. 'cli', 'webchat'. Used for routing."""

    @abstractmethod
    async def start(self, handler: MessageHandler) -> None:
        """Serve messages until stopped."""

    @abstractmethod
    async def stop(self) -> None:
        """Graceful shutdown."""
