"""
Relais du streaming SSE backend -> client avec réécriture des chunks.

Contraintes:
- L'ordre des frames doit être strictement préservé (rendu incrémental)
- Un chunk JSON corrompu ne doit pas interrompre un stream sain
- Le client peut se déconnecter à tout moment: la connexion backend doit
  alors être fermée sans attendre la fin de la génération
- Une erreur réseau après le premier octet ne peut plus devenir une
  réponse d'erreur propre (le statut HTTP est déjà envoyé)

Machine d'états par requête: OPEN -> (emit*) -> DONE, ou OPEN -> CANCELLED.
"""
import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx

from ..core.constants import SSE_DATA_PREFIX, SSE_DONE, SSE_DONE_FRAME
from ..core.exceptions import ClientDisconnected
from ..core.models import StreamChunk

logger = logging.getLogger(__name__)


# Types d'erreurs streaming connus
STREAMING_ERROR_TYPES = {
    "read_error": "Connexion interrompue par le backend",
    "protocol_error": "Flux backend invalide",
    "timeout_error": "Timeout lors de la lecture du stream",
    "decode_error": "Erreur de décodage des données",
    "unknown": "Erreur streaming inconnue"
}

STATE_OPEN = "open"
STATE_DONE = "done"
STATE_CANCELLED = "cancelled"


class CancellationToken:
    """
    Jeton d'annulation coopérative, vérifié à chaque itération du relais.

    ``check()`` est asynchrone pour permettre aux sous-classes de sonder
    la connexion client (voir ``DisconnectToken``).
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def check(self) -> bool:
        return self.cancelled


class DisconnectToken(CancellationToken):
    """Jeton lié à la durée de vie de la connexion client."""

    def __init__(self, is_disconnected: Callable[[], Awaitable[bool]]):
        super().__init__()
        self._is_disconnected = is_disconnected

    async def check(self) -> bool:
        if not self.cancelled and await self._is_disconnected():
            self.cancel()
        return self.cancelled


def rewrite_chunk(payload: str, requested_model: str) -> Optional[str]:
    """
    Réécrit le payload JSON d'un frame ``data:``.

    Returns:
        JSON réécrit (``model`` remplacé par le modèle demandé par le
        client), ou None si le payload n'est pas un objet JSON valide
    """
    try:
        chunk = StreamChunk.parse(payload)
    except ValueError:
        return None
    return chunk.with_model(requested_model).to_json()


def format_data_frame(payload: str) -> bytes:
    return f"{SSE_DATA_PREFIX}{payload}\n\n".encode("utf-8")


class StreamRelay:
    """
    Convertit le stream SSE backend en stream SSE client, ligne par ligne.

    Aucune mise en tampon au-delà d'une ligne: chaque frame réécrit est
    rendu immédiatement (le serveur ASGI l'envoie sans attendre).
    """

    def __init__(
        self,
        response: httpx.Response,
        requested_model: str,
        cancel_token: Optional[CancellationToken] = None,
        request_id: str = "-"
    ):
        self.response = response
        self.requested_model = requested_model
        self.cancel_token = cancel_token or CancellationToken()
        self.request_id = request_id
        self.state = STATE_OPEN
        self.frames_emitted = 0
        self.frames_dropped = 0
        self.error_type: Optional[str] = None
        self._closed = False

    async def aclose(self) -> None:
        """Ferme la réponse backend (idempotent, y compris avant toute itération)."""
        if self._closed:
            return
        self._closed = True
        await self.response.aclose()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        started = datetime.now()
        try:
            async for line in self.response.aiter_lines():
                if await self.cancel_token.check():
                    self.state = STATE_CANCELLED
                    break

                frame = self._process_line(line)
                if frame is None:
                    continue

                # Aucune écriture après annulation
                if await self.cancel_token.check():
                    self.state = STATE_CANCELLED
                    break

                yield frame

                if self.state == STATE_DONE:
                    break

        except httpx.ReadTimeout as e:
            self._log_streaming_error("timeout_error", e, started)
        except (httpx.ReadError, httpx.RemoteProtocolError) as e:
            self._log_streaming_error("read_error", e, started)
        except httpx.DecodingError as e:
            self._log_streaming_error("decode_error", e, started)
        except httpx.HTTPError as e:
            self._log_streaming_error("unknown", e, started)
        except (asyncio.CancelledError, GeneratorExit):
            # Déconnexion détectée par le serveur ASGI
            self.state = STATE_CANCELLED
            raise
        finally:
            await self.aclose()
            self._log_summary(started)

    def _process_line(self, line: str) -> Optional[bytes]:
        if line.startswith(SSE_DATA_PREFIX):
            payload = line[len(SSE_DATA_PREFIX):]
            if payload == SSE_DONE:
                self.state = STATE_DONE
                return SSE_DONE_FRAME

            rewritten = rewrite_chunk(payload, self.requested_model)
            if rewritten is None:
                self.frames_dropped += 1
                logger.warning(f"[{self.request_id}] Chunk SSE invalide ignoré: {payload[:120]}")
                return None

            self.frames_emitted += 1
            return format_data_frame(rewritten)

        if line == "":
            return None

        # event:, id:, retry:, commentaires -> transmis tels quels
        return f"{line}\n".encode("utf-8")

    def _log_streaming_error(self, error_type: str, error: Exception, started: datetime) -> None:
        """Log structuré d'une erreur streaming (le relais s'arrête sans frame d'erreur)."""
        self.error_type = error_type
        duration = (datetime.now() - started).total_seconds()
        logger.error(
            f"[{self.request_id}] {STREAMING_ERROR_TYPES.get(error_type, STREAMING_ERROR_TYPES['unknown'])} "
            f"après {self.frames_emitted} frame(s), {duration:.2f}s: {str(error)[:200]}"
        )

    def _log_summary(self, started: datetime) -> None:
        duration = (datetime.now() - started).total_seconds()
        if self.state == STATE_CANCELLED:
            logger.info(
                f"[{self.request_id}] {ClientDisconnected('Client déconnecté, stream backend fermé')} "
                f"({self.frames_emitted} frame(s), {duration:.2f}s)"
            )
        else:
            logger.info(
                f"[{self.request_id}] Stream terminé ({self.state}): {self.frames_emitted} frame(s), "
                f"{self.frames_dropped} ignoré(s), {duration:.2f}s"
            )


def relay_stream(
    response: httpx.Response,
    requested_model: str,
    cancel_token: Optional[CancellationToken] = None,
    request_id: str = "-"
) -> AsyncIterator[bytes]:
    """
    Générateur de streaming réécrit.

    Args:
        response: Réponse HTTPX en streaming (non consommée)
        requested_model: Modèle demandé par le client
        cancel_token: Jeton d'annulation lié à la connexion client
        request_id: Identifiant de requête pour les logs

    Yields:
        Frames SSE prêts à être écrits côté client

    Raises:
        Aucune: les erreurs backend sont loggées et le stream se termine
    """
    return StreamRelay(response, requested_model, cancel_token, request_id).__aiter__()
