"""
Client HTTPX vers l'API DeepSeek.

Deux chemins:
- synchrone: timeout bout-en-bout borné, corps JSON entièrement lu
- streaming: pas de timeout global (une génération peut être longue), mais
  timeouts de connexion et d'attente des en-têtes; le corps est rendu
  non consommé à l'appelant

Aucun retry automatique: une nouvelle tentative est une décision de
l'appelant.
"""
import asyncio
import json
import logging
from typing import Dict, Optional

import httpx

from ..core.constants import (
    CHAT_COMPLETIONS_PATH,
    CONNECT_TIMEOUT,
    MAX_CONNECTIONS,
    MAX_KEEPALIVE_CONNECTIONS,
    POOL_TIMEOUT,
    RESPONSE_HEADER_TIMEOUT,
    SYNC_TIMEOUT,
    VERSION,
    WRITE_TIMEOUT,
)
from ..core.exceptions import (
    BackendRejected,
    BackendUnreachable,
    InvalidRequestError,
    MalformedBackendPayload,
)
from ..core.models import BackRequest, BackResponse

logger = logging.getLogger(__name__)

USER_AGENT = f"DeepSeek-Proxy/{VERSION}"


class BackendClient:
    """
    Transport HTTP vers le backend.

    Possède un pool de connexions keep-alive partagé entre les requêtes;
    aucune donnée propre à une requête n'est conservée sur le client.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        timeout: float = SYNC_TIMEOUT,
        connect_timeout: float = CONNECT_TIMEOUT,
        header_timeout: float = RESPONSE_HEADER_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.header_timeout = header_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def url(self) -> str:
        return self.endpoint + CHAT_COMPLETIONS_PATH

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._client.is_closed

    def open(self) -> httpx.AsyncClient:
        """Crée le pool de connexions (idempotent)."""
        if not self.is_open:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                limits=httpx.Limits(
                    max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
                    max_connections=MAX_CONNECTIONS
                ),
                transport=self._transport
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BackendClient":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def build_headers(self, stream: bool = False) -> Dict[str, str]:
        """En-têtes statiques exigés par le backend."""
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "text/event-stream" if stream else "application/json",
            "User-Agent": USER_AGENT,
        }

    def build_request(self, req: BackRequest) -> httpx.Request:
        """Construit la requête HTTPX (POST JSON) pour une requête backend."""
        client = self.open()
        if req.stream:
            # Pas de read timeout: le stream peut durer arbitrairement longtemps
            timeout = httpx.Timeout(
                connect=self.connect_timeout,
                read=None,
                write=WRITE_TIMEOUT,
                pool=POOL_TIMEOUT
            )
        else:
            timeout = httpx.Timeout(self.timeout, connect=self.connect_timeout)
        return client.build_request(
            "POST",
            self.url,
            headers=self.build_headers(stream=req.stream),
            content=json.dumps(req.to_dict(), ensure_ascii=False).encode("utf-8"),
            timeout=timeout
        )

    async def send_sync(self, req: BackRequest, request_id: str = "-") -> BackResponse:
        """
        Envoie une requête non-streaming et décode la réponse complète.

        Raises:
            BackendUnreachable: erreur réseau ou timeout global dépassé
            BackendRejected: statut non-2xx
            MalformedBackendPayload: corps JSON invalide
        """
        client = self.open()
        request = self.build_request(req)
        logger.info(f"[{request_id}] → POST {self.url} (model={req.model}, stream=False)")

        try:
            response = await asyncio.wait_for(client.send(request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise BackendUnreachable(
                f"Timeout de {self.timeout:.0f}s dépassé", endpoint=self.url, timeout=True
            ) from e
        except httpx.TimeoutException as e:
            raise BackendUnreachable(f"Timeout backend: {e}", endpoint=self.url, timeout=True) from e
        except httpx.TransportError as e:
            raise BackendUnreachable(f"Backend injoignable: {e}", endpoint=self.url) from e

        if not response.is_success:
            body = response.text
            logger.error(f"[{request_id}] Backend erreur {response.status_code}: {body[:500]}")
            raise BackendRejected(response.status_code, body)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedBackendPayload(
                f"Réponse backend non décodable: {e}", preview=response.text
            ) from e

        if not isinstance(data, dict):
            raise MalformedBackendPayload("Réponse backend inattendue (objet JSON attendu)", preview=response.text)

        try:
            back_response = BackResponse.from_dict(data)
        except (AttributeError, TypeError, InvalidRequestError) as e:
            raise MalformedBackendPayload(
                f"Structure de réponse backend inattendue: {e}", preview=response.text
            ) from e

        logger.info(f"[{request_id}] ← {response.status_code} ({len(back_response.choices)} choix)")
        return back_response

    async def send_stream(self, req: BackRequest, request_id: str = "-") -> httpx.Response:
        """
        Ouvre une requête streaming et rend la réponse non consommée.

        L'appelant doit drainer puis fermer la réponse (``aclose``).

        Raises:
            BackendUnreachable: erreur réseau, timeout de connexion ou d'en-têtes
            BackendRejected: statut non-2xx (le corps est lu puis la connexion fermée)
        """
        client = self.open()
        request = self.build_request(req)
        logger.info(f"[{request_id}] → POST {self.url} (model={req.model}, stream=True)")

        try:
            response = await asyncio.wait_for(
                client.send(request, stream=True), timeout=self.header_timeout
            )
        except asyncio.TimeoutError as e:
            raise BackendUnreachable(
                f"Aucun en-tête reçu après {self.header_timeout:.0f}s", endpoint=self.url, timeout=True
            ) from e
        except httpx.TimeoutException as e:
            raise BackendUnreachable(f"Timeout backend: {e}", endpoint=self.url, timeout=True) from e
        except httpx.TransportError as e:
            raise BackendUnreachable(f"Backend injoignable: {e}", endpoint=self.url) from e

        if not response.is_success:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                body = ""
            finally:
                await response.aclose()
            logger.error(f"[{request_id}] Backend erreur streaming {response.status_code}: {body[:500]}")
            raise BackendRejected(response.status_code, body)

        logger.info(f"[{request_id}] ← {response.status_code} stream ouvert")
        return response


def create_backend_client(settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> BackendClient:
    """
    Crée le transport backend depuis la configuration.

    Args:
        settings: Instance de Settings
        transport: Transport HTTPX alternatif (tests)

    Returns:
        Instance de BackendClient (pool non ouvert)
    """
    return BackendClient(
        endpoint=settings.backend.endpoint,
        api_key=settings.backend.api_key,
        timeout=settings.backend.timeout,
        connect_timeout=settings.backend.connect_timeout,
        transport=transport
    )
