"""
Moteur de traduction et de relais vers l'API DeepSeek.
"""

from .router import ModelPolicyTable, ModelPolicy, DEFAULT_MODEL_MAPPING
from .transformers import translate_request, translate_response
from .tool_utils import convert_tool_choice, convert_messages
from .stream import (
    CancellationToken,
    DisconnectToken,
    StreamRelay,
    relay_stream,
    rewrite_chunk,
)
from .client import BackendClient, create_backend_client
from .gateway import ChatGateway, generate_request_id

__all__ = [
    "ModelPolicyTable",
    "ModelPolicy",
    "DEFAULT_MODEL_MAPPING",
    "translate_request",
    "translate_response",
    "convert_tool_choice",
    "convert_messages",
    "CancellationToken",
    "DisconnectToken",
    "StreamRelay",
    "relay_stream",
    "rewrite_chunk",
    "BackendClient",
    "create_backend_client",
    "ChatGateway",
    "generate_request_id",
]
