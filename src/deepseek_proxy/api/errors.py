"""
Rendu des erreurs au format attendu par les clients OpenAI.

Format: {"error": {"message", "type", "code"}, "timestamp"}
"""
import logging
import time
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.exceptions import ProxyError, BackendRejected

logger = logging.getLogger(__name__)


def error_body(message: str, error_type: str, code: Any, details: Dict[str, Any] = None) -> Dict[str, Any]:
    error = {"message": message, "type": error_type, "code": code}
    if details:
        error["details"] = details
    return {"error": error, "timestamp": int(time.time())}


def render_proxy_error(exc: ProxyError) -> JSONResponse:
    """Convertit une ProxyError en réponse JSON avec le statut approprié."""
    details = dict(exc.details)
    message = exc.message
    if isinstance(exc, BackendRejected):
        message = f"{exc.message}: {exc.body[:500]}" if exc.body else exc.message

    return JSONResponse(
        content=error_body(message, exc.error_type, exc.code, details),
        status_code=exc.status_code
    )


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    logger.error(f"❌ {request.method} {request.url.path}: {exc}")
    return render_proxy_error(exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProxyError, proxy_error_handler)
