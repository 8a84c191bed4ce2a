"""
Point d'entrée du moteur de traduction: requête OpenAI validée ->
réponse OpenAI (synchrone) ou frames SSE (streaming).

Les erreurs de transport sont levées telles quelles (``BackendError``);
le rendu HTTP appartient à la couche API.
"""
import logging
import time
from typing import Awaitable, Callable, Optional

from ..core.constants import REASONING_MODE_SEPARATE
from ..core.models import BackRequest, FrontRequest, FrontResponse
from .client import BackendClient
from .router import ModelPolicyTable
from .stream import CancellationToken, StreamRelay
from .transformers import translate_request, translate_response

logger = logging.getLogger(__name__)

Sink = Callable[[bytes], Awaitable[None]]


def generate_request_id() -> str:
    """Identifiant unique de requête pour le suivi dans les logs."""
    return f"req_{time.time_ns()}"


class ChatGateway:
    """
    Orchestration traduction -> transport -> relais / traduction inverse.

    Ne détient aucun état propre à une requête: une instance est partagée
    par toute l'application.
    """

    def __init__(
        self,
        table: ModelPolicyTable,
        client: BackendClient,
        reasoning_mode: str = REASONING_MODE_SEPARATE
    ):
        self.table = table
        self.client = client
        self.reasoning_mode = reasoning_mode

    def prepare(self, front: FrontRequest, request_id: str = "-") -> BackRequest:
        return translate_request(front, self.table, request_id)

    async def complete(self, front: FrontRequest, request_id: str = None) -> FrontResponse:
        """
        Chemin synchrone.

        Raises:
            BackendUnreachable, BackendRejected, MalformedBackendPayload
        """
        request_id = request_id or generate_request_id()
        back_request = self.prepare(front, request_id)
        back_request.stream = False

        back_response = await self.client.send_sync(back_request, request_id)
        return translate_response(
            back_response,
            requested_model=front.model,
            table=self.table,
            reasoning_mode=self.reasoning_mode,
            backend_model=back_request.model,
            request_id=request_id
        )

    async def open_stream(
        self,
        front: FrontRequest,
        cancel_token: Optional[CancellationToken] = None,
        request_id: str = None
    ) -> StreamRelay:
        """
        Chemin streaming: ouvre le stream backend puis rend le relais.

        Les erreurs d'ouverture (backend injoignable, statut non-2xx) sont
        levées ici, avant le premier octet envoyé au client. L'appelant
        possède le relais et doit appeler ``aclose()`` même s'il ne
        l'itère jamais.
        """
        request_id = request_id or generate_request_id()
        back_request = self.prepare(front, request_id)
        back_request.stream = True

        response = await self.client.send_stream(back_request, request_id)
        return StreamRelay(response, front.model, cancel_token, request_id)

    async def stream_to(
        self,
        front: FrontRequest,
        sink: Sink,
        cancel_token: Optional[CancellationToken] = None,
        request_id: str = None
    ) -> None:
        """Écrit chaque frame SSE dans ``sink`` dès sa réception."""
        relay = await self.open_stream(front, cancel_token, request_id)
        frames = relay.__aiter__()
        try:
            async for frame in frames:
                await sink(frame)
        finally:
            await frames.aclose()
            await relay.aclose()

    async def handle(
        self,
        front: FrontRequest,
        stream: bool,
        sink: Optional[Sink] = None,
        cancel_token: Optional[CancellationToken] = None,
        request_id: str = None
    ) -> Optional[FrontResponse]:
        """
        Traite une requête validée.

        Returns:
            La réponse OpenAI en mode synchrone, None en mode streaming
            (les frames sont alors écrits dans ``sink``)
        """
        if not stream:
            return await self.complete(front, request_id)
        if sink is None:
            raise ValueError("Un sink est requis en mode streaming")
        await self.stream_to(front, sink, cancel_token, request_id)
        return None
