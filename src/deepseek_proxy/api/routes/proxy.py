"""
Route proxy principale /v1/chat/completions.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ...core.exceptions import InvalidRequestError
from ...core.models import FrontRequest
from ...proxy.gateway import generate_request_id
from ...proxy.stream import DisconnectToken, StreamRelay
from ..auth import verify_api_key

logger = logging.getLogger(__name__)

router = APIRouter()

# Désactive la mise en tampon côté client et reverse-proxy
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RelayResponse(StreamingResponse):
    """
    StreamingResponse qui ferme le stream backend quoi qu'il arrive, même
    si l'envoi échoue avant le premier frame.
    """

    def __init__(self, relay: StreamRelay, **kwargs):
        super().__init__(relay, **kwargs)
        self.relay = relay

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.relay.aclose()


def get_client_ip(request: Request) -> str:
    """IP réelle du client (X-Forwarded-For, X-Real-IP, puis socket)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "unknown"


def parse_front_request(body: bytes) -> FrontRequest:
    """
    Raises:
        InvalidRequestError: JSON invalide ou structure inexploitable
    """
    try:
        data = json.loads(body)
    except ValueError as e:
        raise InvalidRequestError(f"JSON invalide: {e}") from e
    return FrontRequest.from_dict(data)


@router.post("/v1/chat/completions", dependencies=[Depends(verify_api_key)])
@router.post("/chat/completions", dependencies=[Depends(verify_api_key)])
async def chat_completions(request: Request):
    """
    Proxy OpenAI -> DeepSeek:
    - traduction de la requête (modèle, température, outils)
    - réponse synchrone traduite, ou stream SSE réécrit frame par frame
    """
    request_id = generate_request_id()
    logger.info(
        f"[{request_id}] {request.method} {request.url.path} depuis {get_client_ip(request)} "
        f"(User-Agent: {request.headers.get('user-agent', '-')})"
    )

    front = parse_front_request(await request.body())
    gateway = request.app.state.gateway

    if front.stream:
        token = DisconnectToken(request.is_disconnected)
        relay = await gateway.open_stream(front, token, request_id)
        return RelayResponse(relay, media_type="text/event-stream", headers=SSE_HEADERS)

    response = await gateway.complete(front, request_id)
    return JSONResponse(content=response.to_dict())
