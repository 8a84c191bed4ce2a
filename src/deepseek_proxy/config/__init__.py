"""
Configuration de DeepSeek Proxy.
"""

from .loader import load_config, reload_config, get_config, mask_api_key
from .settings import Settings, ServerConfig, BackendConfig, AuthConfig, ReasoningConfig

__all__ = [
    "load_config",
    "reload_config",
    "get_config",
    "mask_api_key",
    "Settings",
    "ServerConfig",
    "BackendConfig",
    "AuthConfig",
    "ReasoningConfig",
]
