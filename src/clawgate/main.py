"""FastAPI application factory for the webchat transport.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance around a message handler. Everything a route needs (handler,
admin token, shutdown hook, status provider) is stored on app.state, so
the same factory serves the real gateway and the tests.
Middleware, CORS, and routers all registered here.
"""

from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clawgate import __version__
from clawgate.api import api_router, page_router
from clawgate.middleware.request_id import RequestIdMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. The gateway itself is owned by the caller, so this only logs.
    """
    logger.info("webchat.starting", version=__version__)
    yield
    logger.info("webchat.shutdown")


def create_app(
    message_handler: Callable[[str, str], Awaitable[str]],
    *,
    admin_token: str = "",
    shutdown_hook: Optional[Callable[[], None]] = None,
    status_provider: Optional[Callable[[], dict]] = None,
    shutdown_delay_seconds: float = 0.5,
) -> FastAPI:
    """Build and return the webchat application."""
    app = FastAPI(
        title="clawgate",
        description="Multi-agent chat gateway — webchat transport",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.message_handler = message_handler
    app.state.admin_token = admin_token
    app.state.shutdown_hook = shutdown_hook
    app.state.status_provider = status_provider
    app.state.shutdown_delay_seconds = shutdown_delay_seconds

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(page_router)
    app.include_router(api_router)

    return app
