"""Chat API — send a message, get the agent's reply; admin shutdown.

Learn: The message handler, admin token and shutdown hook live on
app.state (set by create_app), so the routes stay free of globals and tests
can build an app around any async handler.
"""

import asyncio
from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger()

router = APIRouter()

DEFAULT_SENDER = "web-user"


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    sender_id: Optional[str] = Field(None, alias="senderId")


class ShutdownRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    admin_token: str = Field("", alias="adminToken")


@router.post("/chat")
async def chat(body: ChatRequest, request: Request):
    """Hand one message to the gateway and return its reply."""
    if not body.message.strip():
        return JSONResponse(status_code=400, content={"error": "empty message"})

    sender_id = (body.sender_id or "").strip() or DEFAULT_SENDER
    handler = request.app.state.message_handler
    try:
        reply = await handler(sender_id, body.message)
    except Exception as e:
        logger.exception("webchat.chat_failed", sender_id=sender_id)
        return JSONResponse(status_code=500, content={"error": f"Agent error: {e}"})
    return {"reply": reply}


async def _run_shutdown_hook(hook, delay: float) -> None:
    # Give the response time to reach the browser first
    if delay:
        await asyncio.sleep(delay)
    hook()


@router.post("/shutdown")
async def shutdown(body: ShutdownRequest, request: Request, background_tasks: BackgroundTasks):
    """Stop the gateway (admin token required)."""
    state = request.app.state
    if not state.admin_token or body.admin_token != state.admin_token:
        logger.warning("webchat.shutdown_denied")
        return JSONResponse(status_code=403, content={"error": "Invalid admin token"})

    logger.info("webchat.shutdown_requested")
    if state.shutdown_hook is not None:
        background_tasks.add_task(
            _run_shutdown_hook, state.shutdown_hook, state.shutdown_delay_seconds
        )
    return {"message": "Shutting down..."}
