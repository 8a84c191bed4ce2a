"""
Cœur métier de DeepSeek Proxy.
Modules indépendants sans dépendances externes au package.
"""

from .exceptions import (
    ProxyError,
    ConfigurationError,
    AuthenticationError,
    InvalidRequestError,
    TranslationDegraded,
    BackendError,
    BackendUnreachable,
    BackendRejected,
    MalformedBackendPayload,
    ClientDisconnected,
)
from .constants import (
    VERSION,
    SERVICE_NAME,
    DEFAULT_ENDPOINT,
    DEFAULT_BACKEND_MODEL,
    DEFAULT_TEMPERATURE,
    REASONING_MODE_SEPARATE,
    REASONING_MODE_MERGED,
)
from .models import (
    ToolInvocation,
    FunctionSpec,
    ToolSpec,
    ChatMessage,
    FrontRequest,
    BackRequest,
    Usage,
    Choice,
    BackResponse,
    FrontResponse,
    StreamChunk,
)

__all__ = [
    # Exceptions
    "ProxyError",
    "ConfigurationError",
    "AuthenticationError",
    "InvalidRequestError",
    "TranslationDegraded",
    "BackendError",
    "BackendUnreachable",
    "BackendRejected",
    "MalformedBackendPayload",
    "ClientDisconnected",
    # Constants
    "VERSION",
    "SERVICE_NAME",
    "DEFAULT_ENDPOINT",
    "DEFAULT_BACKEND_MODEL",
    "DEFAULT_TEMPERATURE",
    "REASONING_MODE_SEPARATE",
    "REASONING_MODE_MERGED",
    # Models
    "ToolInvocation",
    "FunctionSpec",
    "ToolSpec",
    "ChatMessage",
    "FrontRequest",
    "BackRequest",
    "Usage",
    "Choice",
    "BackResponse",
    "FrontResponse",
    "StreamChunk",
]
