"""Health check endpoint.

Learn: Simple GET endpoint that reports the gateway is up, plus whatever
the status provider knows (agents, skills version, scheduler stats).
"""

from fastapi import APIRouter, Request

from clawgate import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health."""
    checks = {"status": "ok", "version": __version__}

    provider = request.app.state.status_provider
    if provider is not None:
        try:
            checks.update(provider())
        except Exception as e:
            checks["status"] = "degraded"
            checks["error"] = str(e)

    return checks
