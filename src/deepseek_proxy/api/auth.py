"""
Vérification de la clé API présentée par les clients (Bearer token).
"""
import hmac

from fastapi import Request

from ..core.exceptions import AuthenticationError

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str) -> str:
    """
    Raises:
        AuthenticationError: en-tête absent, mal formé ou jeton vide
    """
    if not authorization:
        raise AuthenticationError("En-tête Authorization manquant")
    if not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationError("En-tête Authorization mal formé, attendu 'Bearer <token>'")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError("Clé API vide")
    return token


async def verify_api_key(request: Request) -> None:
    """Dépendance FastAPI: rejette les requêtes sans clé API valide."""
    auth = request.app.state.settings.auth
    if not auth.enabled:
        return

    token = extract_bearer_token(request.headers.get("authorization", ""))
    if not hmac.compare_digest(token.encode("utf-8"), auth.api_key.encode("utf-8")):
        raise AuthenticationError("Clé API invalide")
