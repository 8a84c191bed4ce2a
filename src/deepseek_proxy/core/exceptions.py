"""
Exceptions personnalisées pour DeepSeek Proxy.

Chaque exception porte un code stable (``code``), un statut HTTP suggéré
(``status_code``) et un type d'erreur au format OpenAI (``error_type``).
La couche API se charge du rendu; le moteur ne fait que lever.
"""


class ProxyError(Exception):
    """Exception de base pour toutes les erreurs du proxy."""

    status_code = 500
    error_type = "api_error"

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code or "unknown_error"
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"[{self.code}] {self.message} - Détails: {self.details}"
        return f"[{self.code}] {self.message}"


class ConfigurationError(ProxyError):
    """Erreur de configuration (fichier manquant, valeur invalide)."""

    def __init__(self, message: str, config_key: str = None):
        super().__init__(
            message=message,
            code="config_error",
            details={"key": config_key} if config_key else {}
        )


class AuthenticationError(ProxyError):
    """Clé API client absente ou invalide."""

    status_code = 401
    error_type = "authentication_error"

    def __init__(self, message: str):
        super().__init__(message=message, code="invalid_api_key")


class InvalidRequestError(ProxyError):
    """Corps de requête client illisible (JSON invalide, champ manquant)."""

    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message=message,
            code="invalid_request",
            details={"field": field} if field else {}
        )


class TranslationDegraded(ProxyError):
    """
    Dégradation silencieuse lors de la traduction (modèle inconnu,
    tool_choice non supporté).

    Jamais levée par le traducteur: sert uniquement à classer les
    événements dans les logs.
    """

    def __init__(self, message: str, field: str = None, original=None, applied=None):
        super().__init__(
            message=message,
            code="translation_degraded",
            details={"field": field, "original": original, "applied": applied}
        )


class BackendError(ProxyError):
    """Erreur de base liée au backend DeepSeek."""

    status_code = 502
    error_type = "backend_error"


class BackendUnreachable(BackendError):
    """Connexion impossible au backend (DNS, refus, timeout, coupure)."""

    error_type = "backend_unreachable"

    def __init__(self, message: str, endpoint: str = None, timeout: bool = False):
        super().__init__(
            message=message,
            code="backend_unreachable",
            details={"endpoint": endpoint} if endpoint else {}
        )
        self.timeout = timeout
        if timeout:
            self.status_code = 504


class BackendRejected(BackendError):
    """Le backend a répondu avec un statut non-2xx."""

    error_type = "backend_rejected"

    def __init__(self, status: int, body: str):
        super().__init__(
            message=f"Le backend a retourné une erreur {status}",
            code="backend_rejected",
            details={"status": status, "body": body[:2000] if body else ""}
        )
        self.status = status
        self.body = body


class MalformedBackendPayload(BackendError):
    """Réponse backend non décodable (JSON invalide)."""

    error_type = "malformed_backend_payload"

    def __init__(self, message: str, preview: str = None):
        details = {}
        if preview:
            details["preview"] = preview[:200]
        super().__init__(
            message=message,
            code="malformed_backend_payload",
            details=details
        )


class ClientDisconnected(ProxyError):
    """
    Déconnexion du client pendant le streaming.

    Ce n'est pas une erreur remontée à l'appelant: le relais s'arrête.
    """

    status_code = 499
    error_type = "client_disconnected"

    def __init__(self, message: str = "Client déconnecté", request_id: str = None):
        super().__init__(
            message=message,
            code="client_disconnected",
            details={"request_id": request_id} if request_id else {}
        )
