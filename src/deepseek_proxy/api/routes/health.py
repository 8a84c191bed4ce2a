"""
Routes de supervision: health check, usage et page d'accueil.
"""
import time

from fastapi import APIRouter, Request

from ...core.constants import SERVICE_NAME, VERSION

router = APIRouter()


def _uptime(request: Request) -> float:
    return round(time.monotonic() - request.app.state.started_at, 3)


@router.get("/health")
async def health_check(request: Request):
    """Health check minimal pour la supervision."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": int(time.time()),
        "uptime": _uptime(request),
    }


@router.get("/v1/usage")
async def usage(request: Request):
    """État du proxy et modèles supportés."""
    settings = request.app.state.settings
    return {
        "status": "active",
        "proxy_version": VERSION,
        "uptime_seconds": _uptime(request),
        "supported_models": request.app.state.table.supported_models(),
        "endpoint": settings.backend.endpoint,
        "reasoning_mode": settings.reasoning.mode,
        "timestamp": int(time.time()),
    }


@router.get("/")
async def root(request: Request):
    """Informations d'usage du service."""
    port = request.app.state.settings.server.port
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "status": "ok",
        "base_url": f"http://localhost:{port}/v1",
        "endpoints": {
            "chat_completions": "POST /v1/chat/completions",
            "models": "GET /v1/models",
            "health": "GET /health",
            "usage": "GET /v1/usage",
        },
        "supported_models": request.app.state.table.supported_models(),
    }
