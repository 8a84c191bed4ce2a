"""
Dataclasses pour la configuration.
"""
import os
from dataclasses import dataclass, field
from typing import List, Dict, Any, Mapping

from ..core.constants import (
    DEFAULT_ENDPOINT,
    DEFAULT_BACKEND_MODEL,
    DEFAULT_PORT,
    SYNC_TIMEOUT,
    CONNECT_TIMEOUT,
    REASONING_MODE_SEPARATE,
    REASONING_MODES,
)
from ..core.exceptions import ConfigurationError


@dataclass(frozen=True)
class ServerConfig:
    """Configuration du serveur HTTP."""
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT


@dataclass(frozen=True)
class BackendConfig:
    """Configuration du backend DeepSeek."""
    endpoint: str = DEFAULT_ENDPOINT
    api_key: str = ""
    default_model: str = DEFAULT_BACKEND_MODEL
    timeout: float = SYNC_TIMEOUT
    connect_timeout: float = CONNECT_TIMEOUT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackendConfig":
        """Crée une instance depuis un dictionnaire."""
        return cls(
            endpoint=data.get("endpoint", DEFAULT_ENDPOINT),
            api_key=data.get("api_key", ""),
            default_model=data.get("default_model", DEFAULT_BACKEND_MODEL),
            timeout=data.get("timeout", SYNC_TIMEOUT),
            connect_timeout=data.get("connect_timeout", CONNECT_TIMEOUT)
        )


@dataclass(frozen=True)
class AuthConfig:
    """Contrôle de la clé API présentée par les clients."""
    enabled: bool = True
    api_key: str = ""


@dataclass(frozen=True)
class ReasoningConfig:
    """
    Politique d'exposition du raisonnement.

    - "separate": reasoning_content en champ distinct (modèles de raisonnement)
    - "merged": raisonnement préfixé au content (clients à schéma strict)
    """
    mode: str = REASONING_MODE_SEPARATE


@dataclass(frozen=True)
class Settings:
    """Configuration globale de l'application, figée au démarrage."""
    server: ServerConfig = field(default_factory=ServerConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    reasoning: ReasoningConfig = field(default_factory=ReasoningConfig)
    models: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    backend_models: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Dict[str, Any], environ: Mapping[str, str] = None) -> "Settings":
        """Crée une instance depuis la configuration chargée (+ environnement)."""
        from .loader import (
            get_server_config,
            get_backend_config,
            get_auth_config,
            get_reasoning_config,
            get_models_config,
            get_backend_models_config,
        )

        environ = os.environ if environ is None else environ
        backend = BackendConfig.from_dict(get_backend_config(config, environ))
        auth = get_auth_config(config, environ)

        return cls(
            server=ServerConfig(**get_server_config(config, environ)),
            backend=backend,
            auth=AuthConfig(
                enabled=auth["enabled"],
                api_key=auth["api_key"] or backend.api_key
            ),
            reasoning=ReasoningConfig(**get_reasoning_config(config, environ)),
            models=get_models_config(config),
            backend_models=get_backend_models_config(config)
        )

    def validate(self) -> "Settings":
        """
        Vérifie les valeurs obligatoires.

        Raises:
            ConfigurationError: clé API absente, port hors limites,
                endpoint vide ou mode de raisonnement inconnu
        """
        if not self.backend.api_key:
            raise ConfigurationError(
                "DEEPSEEK_API_KEY est requis (variable d'environnement ou [backend].api_key)",
                config_key="backend.api_key"
            )
        if not 0 < self.server.port <= 65535:
            raise ConfigurationError(
                f"Le port doit être compris entre 1 et 65535 (reçu: {self.server.port})",
                config_key="server.port"
            )
        if not self.backend.endpoint:
            raise ConfigurationError("L'endpoint DeepSeek ne peut pas être vide", config_key="backend.endpoint")
        if self.reasoning.mode not in REASONING_MODES:
            raise ConfigurationError(
                f"Mode de raisonnement inconnu: {self.reasoning.mode} (attendu: {', '.join(REASONING_MODES)})",
                config_key="reasoning.mode"
            )
        return self
