"""WebChat channel — browser chat UI plus a small JSON API, served by uvicorn.

Learn: The FastAPI app is built by clawgate.main.create_app(); this channel
only hosts it. uvicorn.Server is driven directly (not uvicorn.run) so it
shares the gateway's event loop, and stop() flips server.should_exit for a
graceful exit.
"""

from typing import Callable, Optional

import structlog
import uvicorn
from fastapi import FastAPI

from clawgate.channels.base import Channel, MessageHandler
from clawgate.main import create_app

logger = structlog.get_logger()


class WebChatChannel(Channel):
    """HTTP transport on host:port."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8080,
        admin_token: str = "",
        shutdown_hook: Optional[Callable[[], None]] = None,
        status_provider: Optional[Callable[[], dict]] = None,
    ):
        self.host = host
        self.port = port
        self.admin_token = admin_token
        self.shutdown_hook = shutdown_hook
        self.status_provider = status_provider
        self._server: Optional[uvicorn.Server] = None

    @property
    def id(self) -> str:
        return "webchat"

    def build_app(self, handler: MessageHandler) -> FastAPI:
        return create_app(
            handler,
            admin_token=self.admin_token,
            shutdown_hook=self.shutdown_hook,
            status_provider=self.status_provider,
        )

    async def start(self, handler: MessageHandler) -> None:
        config = uvicorn.Config(
            self.build_app(handler),
            host=self.host,
            port=self.port,
            log_config=None,  # keep clawgate's logging setup
            lifespan="on",
        )
        self._server = uvicorn.Server(config)
        logger.info("channels.webchat_started", url=f"http://{self.host}:{self.port}")
        await self._server.serve()
        logger.info("channels.webchat_stopped")

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
