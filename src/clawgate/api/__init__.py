"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: The chat page lives at the root; the JSON endpoints share the /api
prefix. There is no per-user auth: the webchat is a local surface, and the
only privileged action (shutdown) checks the admin token itself.
"""

from fastapi import APIRouter

from clawgate.api.chat import router as chat_router
from clawgate.api.health import router as health_router
from clawgate.api.page import router as page_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(chat_router, tags=["chat"])

__all__ = ["api_router", "page_router"]
