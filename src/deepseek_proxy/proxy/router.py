"""
Table de politique des modèles: routage client -> backend et capacités.

La table est construite une seule fois au démarrage puis partagée en
lecture seule entre toutes les requêtes (aucun verrou nécessaire).
"""
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Any, Iterable, List, Mapping, Optional, Tuple

from ..core.constants import (
    DEFAULT_BACKEND_MODEL,
    CAP_SUPPORTS_TOOLS,
    CAP_IGNORES_SAMPLING,
    CAP_REASONING,
)

logger = logging.getLogger(__name__)


# Modèles exposés aux clients -> modèles DeepSeek
DEFAULT_MODEL_MAPPING = {
    # Série o3/o4 -> modèle de raisonnement
    "o3": "deepseek-reasoner",
    "o3-preview": "deepseek-reasoner",
    "o3-mini": "deepseek-reasoner",
    "o4-mini": "deepseek-reasoner",
    # Modèles GPT classiques
    "gpt-4o": "deepseek-reasoner",
    "gpt-4": "deepseek-chat",
    "gpt-3.5-turbo": "deepseek-chat",
    # Modèles DeepSeek natifs (inchangés)
    "deepseek-chat": "deepseek-chat",
    "deepseek-coder": "deepseek-coder",
    "deepseek-reasoner": "deepseek-reasoner",
}

# Capacités par modèle backend
DEFAULT_BACKEND_CAPABILITIES = {
    "deepseek-chat": (CAP_SUPPORTS_TOOLS,),
    "deepseek-coder": (CAP_SUPPORTS_TOOLS,),
    # Le modèle de raisonnement rejette temperature/top_p et produit reasoning_content
    "deepseek-reasoner": (CAP_IGNORES_SAMPLING, CAP_REASONING),
}


@dataclass(frozen=True)
class ModelPolicy:
    """Politique applicable à un modèle backend."""
    backend_model: str
    capabilities: frozenset = frozenset()

    @property
    def supports_tools(self) -> bool:
        return CAP_SUPPORTS_TOOLS in self.capabilities

    @property
    def ignores_sampling_params(self) -> bool:
        return CAP_IGNORES_SAMPLING in self.capabilities

    @property
    def is_reasoning(self) -> bool:
        return CAP_REASONING in self.capabilities


class ModelPolicyTable:
    """
    Mapping immuable modèle client -> modèle backend + capacités backend.

    Les identifiants inconnus ne font pas échouer la requête: ils sont
    routés vers le modèle backend par défaut.
    """

    def __init__(
        self,
        mapping: Mapping[str, str] = None,
        capabilities: Mapping[str, Iterable[str]] = None,
        default_model: str = DEFAULT_BACKEND_MODEL
    ):
        merged_mapping = dict(DEFAULT_MODEL_MAPPING if mapping is None else mapping)
        merged_caps = {
            model: frozenset(caps)
            for model, caps in (DEFAULT_BACKEND_CAPABILITIES if capabilities is None else capabilities).items()
        }
        self._mapping = MappingProxyType(merged_mapping)
        self._capabilities = MappingProxyType(merged_caps)
        self._default_model = default_model

    @classmethod
    def from_settings(cls, settings) -> "ModelPolicyTable":
        """
        Construit la table depuis Settings: défauts + surcharges [models] et
        [backend_models] du config.toml.
        """
        mapping = dict(DEFAULT_MODEL_MAPPING)
        for client_model, model_data in settings.models.items():
            mapping[client_model] = model_data["model"]

        capabilities: Dict[str, Iterable[str]] = dict(DEFAULT_BACKEND_CAPABILITIES)
        capabilities.update(settings.backend_models)

        table = cls(mapping, capabilities, settings.backend.default_model)
        logger.info(
            "Table des modèles: %d alias, %d modèle(s) backend, défaut=%s",
            len(table.mapping), len(table.capabilities), table.default_model
        )
        return table

    @property
    def mapping(self) -> Mapping[str, str]:
        return self._mapping

    @property
    def capabilities(self) -> Mapping[str, frozenset]:
        return self._capabilities

    @property
    def default_model(self) -> str:
        return self._default_model

    def resolve(self, client_model: str) -> Tuple[str, bool]:
        """
        Résout un modèle client.

        Returns:
            (modèle backend, True si le modèle était inconnu et a été dégradé
            vers le modèle par défaut)
        """
        mapped = self._mapping.get(client_model)
        if mapped is not None:
            return mapped, False
        return self._default_model, True

    def policy_for(self, backend_model: str) -> ModelPolicy:
        """Politique d'un modèle backend (aucune capacité si non déclaré)."""
        return ModelPolicy(
            backend_model=backend_model,
            capabilities=self._capabilities.get(backend_model, frozenset())
        )

    def supported_models(self) -> List[str]:
        """Identifiants de modèles annoncés aux clients (ordre de déclaration)."""
        return list(self._mapping.keys())

    def describe(self, client_model: str) -> Optional[Dict[str, Any]]:
        """Description d'un alias client (None si inconnu)."""
        mapped = self._mapping.get(client_model)
        if mapped is None:
            return None
        policy = self.policy_for(mapped)
        return {
            "id": client_model,
            "backend_model": mapped,
            "capabilities": sorted(policy.capabilities),
        }
