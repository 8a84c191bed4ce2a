"""deepseek_proxy.config.loader

Chargement de la configuration TOML.

Règle de priorité: variables d'environnement > config.toml > défauts.
Le fichier est optionnel: sans lui, le proxy se configure entièrement via
l'environnement (DEEPSEEK_API_KEY, DEEPSEEK_MODEL, DEEPSEEK_ENDPOINT, PORT).
"""
import os
import re
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional, Mapping

from ..core.constants import (
    DEFAULT_ENDPOINT,
    DEFAULT_BACKEND_MODEL,
    DEFAULT_PORT,
    SYNC_TIMEOUT,
    CONNECT_TIMEOUT,
    REASONING_MODE_SEPARATE,
)
from ..core.exceptions import ConfigurationError

CONFIG_ENV_VAR = "DEEPSEEK_PROXY_CONFIG"

# Cache global de configuration
_config_cache: Optional[Dict[str, Any]] = None

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(obj: Any) -> Any:
    """
    Récursivement étend les variables d'environnement ${VAR} dans la config.

    Une variable absente de l'environnement est laissée telle quelle.
    """
    if isinstance(obj, str):
        def replace_env_var(match):
            return os.environ.get(match.group(1), match.group(0))
        return _ENV_VAR_PATTERN.sub(replace_env_var, obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def _clear_config_cache():
    """Vide le cache de configuration."""
    global _config_cache
    _config_cache = None


def _default_config_path() -> Path:
    # Structure: project/src/deepseek_proxy/config/loader.py
    return Path(__file__).resolve().parents[3] / "config.toml"


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Charge la configuration depuis config.toml.

    Args:
        config_path: Chemin explicite (sinon $DEEPSEEK_PROXY_CONFIG, sinon
            config.toml à la racine du projet)

    Returns:
        Dictionnaire de configuration (vide si aucun fichier par défaut)

    Raises:
        ConfigurationError: Si un fichier explicitement demandé n'existe pas
            ou si le TOML est invalide
    """
    global _config_cache

    if _config_cache is not None:
        return _config_cache

    explicit = config_path or os.environ.get(CONFIG_ENV_VAR)
    path = Path(explicit) if explicit else _default_config_path()

    if not path.exists():
        if explicit:
            raise ConfigurationError(
                message=f"Fichier de configuration non trouvé: {path}",
                config_key="config_path"
            )
        _config_cache = {}
        return _config_cache

    try:
        with open(path, "rb") as f:
            _config_cache = _expand_env_vars(tomllib.load(f))
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            message=f"config.toml invalide: {e}",
            config_key="config_path"
        ) from e

    return _config_cache


def reload_config(config_path: str = None) -> Dict[str, Any]:
    """Recharge la configuration depuis le fichier."""
    _clear_config_cache()
    return load_config(config_path)


def get_config() -> Dict[str, Any]:
    """Retourne la configuration en cache (chargée au besoin)."""
    if _config_cache is None:
        return load_config()
    return _config_cache


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    obj = config.get(name)
    return obj if isinstance(obj, dict) else {}


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    value = environ.get(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        print(f"⚠️  [CONFIG] {key}='{value}' n'est pas un entier valide, défaut {default}")
        return default


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return float(value)
    return default


def get_server_config(config: Dict[str, Any], environ: Mapping[str, str] = None) -> Dict[str, Any]:
    """Extrait la section [server] (hôte, port)."""
    environ = os.environ if environ is None else environ
    server = _section(config, "server")
    port = server.get("port", DEFAULT_PORT)
    return {
        "host": server.get("host", "0.0.0.0"),
        "port": _env_int(environ, "PORT", port if isinstance(port, int) else DEFAULT_PORT),
    }


def get_backend_config(config: Dict[str, Any], environ: Mapping[str, str] = None) -> Dict[str, Any]:
    """Extrait la section [backend] avec priorité aux variables d'environnement."""
    environ = os.environ if environ is None else environ
    backend = _section(config, "backend")
    return {
        "endpoint": (environ.get("DEEPSEEK_ENDPOINT") or backend.get("endpoint") or DEFAULT_ENDPOINT).rstrip("/"),
        "api_key": environ.get("DEEPSEEK_API_KEY") or backend.get("api_key", ""),
        "default_model": environ.get("DEEPSEEK_MODEL") or backend.get("default_model") or DEFAULT_BACKEND_MODEL,
        "timeout": _as_float(backend.get("timeout"), SYNC_TIMEOUT),
        "connect_timeout": _as_float(backend.get("connect_timeout"), CONNECT_TIMEOUT),
    }


def get_auth_config(config: Dict[str, Any], environ: Mapping[str, str] = None) -> Dict[str, Any]:
    """
    Extrait la section [auth].

    Sans clé dédiée, les clients doivent présenter la clé DeepSeek elle-même.
    """
    environ = os.environ if environ is None else environ
    auth = _section(config, "auth")
    return {
        "enabled": bool(auth.get("enabled", True)),
        "api_key": environ.get("PROXY_API_KEY") or auth.get("api_key", ""),
    }


def get_reasoning_config(config: Dict[str, Any], environ: Mapping[str, str] = None) -> Dict[str, Any]:
    """Extrait la section [reasoning] (politique d'exposition du raisonnement)."""
    environ = os.environ if environ is None else environ
    reasoning = _section(config, "reasoning")
    mode = environ.get("REASONING_MODE") or reasoning.get("mode") or REASONING_MODE_SEPARATE
    return {"mode": str(mode).strip().lower()}


def get_models_config(config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Extrait les mappings de modèles additionnels.

    Format TOML::

        [models."gpt-4o"]
        model = "deepseek-chat"

        [backend_models."deepseek-chat"]
        capabilities = ["supports_tools"]
    """
    models = {}
    for model_key, model_data in _section(config, "models").items():
        if isinstance(model_data, str):
            models[model_key] = {"model": model_data}
        elif isinstance(model_data, dict) and model_data.get("model"):
            models[model_key] = {"model": model_data["model"]}
    return models


def get_backend_models_config(config: Dict[str, Any]) -> Dict[str, list]:
    """Extrait les capacités déclarées par modèle backend."""
    capabilities = {}
    for model_key, model_data in _section(config, "backend_models").items():
        if isinstance(model_data, dict) and isinstance(model_data.get("capabilities"), list):
            capabilities[model_key] = [str(c) for c in model_data["capabilities"]]
    return capabilities


def mask_api_key(api_key: str) -> str:
    """Masque une clé API pour les logs (4 premiers + 4 derniers caractères)."""
    if not api_key:
        return "non définie"
    if len(api_key) < 8:
        return "définie (format suspect)"
    return api_key[:4] + "****" + api_key[-4:]
