"""Message transports (CLI, WebChat)."""

from clawgate.channels.base import Channel, MessageHandler
from clawgate.channels.cli import CliChannel
from clawgate.channels.webchat import WebChatChannel

__all__ = ["Channel", "CliChannel", "MessageHandler", "WebChatChannel"]
