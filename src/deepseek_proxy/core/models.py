"""
Dataclasses métier pour DeepSeek Proxy.

Les noms de champs Python sont ceux du moteur de traduction; les noms sur
le fil (schéma OpenAI côté client, schéma DeepSeek côté backend) sont
gérés exclusivement par ``from_dict`` / ``to_dict``:

    max_output_tokens   <-> max_tokens
    tool_invocations    <-> tool_calls
    tool_invocation_ref <-> tool_call_id
    reasoning_trace     <-> reasoning_content
    legacy_functions    <-> functions
"""
import copy
import json
import re
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Tuple, Union

from .exceptions import InvalidRequestError


def _content_to_text(content: Any) -> str:
    """Normalise un contenu de message en texte (None, str ou liste de parts)."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
            elif isinstance(part, str):
                parts.append(part)
        return "\n".join(parts)
    return str(content)


@dataclass
class ToolInvocation:
    """Appel d'outil émis par l'assistant. Les arguments ne sont jamais parsés."""
    id: str
    function_name: str
    function_arguments: str = ""
    kind: str = "function"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolInvocation":
        function = data.get("function") or {}
        return cls(
            id=data.get("id", ""),
            function_name=function.get("name", ""),
            function_arguments=function.get("arguments", ""),
            kind=data.get("type", "function")
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "function": {
                "name": self.function_name,
                "arguments": self.function_arguments
            }
        }


@dataclass
class FunctionSpec:
    """Définition d'une fonction appelable (format ``functions`` historique)."""
    name: str
    description: str = ""
    parameter_schema: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FunctionSpec":
        extra = {
            k: v for k, v in data.items()
            if k not in ("name", "description", "parameters")
        }
        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            parameter_schema=data.get("parameters"),
            extra=extra
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameter_schema
        }
        result.update(self.extra)
        return result


@dataclass
class ToolSpec:
    """Définition d'outil au format ``tools``."""
    function: FunctionSpec
    kind: str = "function"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolSpec":
        return cls(
            function=FunctionSpec.from_dict(data.get("function") or {}),
            kind=data.get("type", "function")
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "function": self.function.to_dict()}


@dataclass
class ChatMessage:
    """Un message de conversation."""
    role: str
    content: str = ""
    reasoning_trace: Optional[str] = None
    tool_invocations: List[ToolInvocation] = field(default_factory=list)
    tool_invocation_ref: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        if not isinstance(data, dict):
            raise InvalidRequestError("Chaque message doit être un objet JSON", field="messages")
        role = data.get("role")
        if not role or not isinstance(role, str):
            raise InvalidRequestError("Le champ 'role' est obligatoire", field="messages.role")
        return cls(
            role=role,
            content=_content_to_text(data.get("content")),
            reasoning_trace=data.get("reasoning_content") or None,
            tool_invocations=[
                ToolInvocation.from_dict(tc) for tc in (data.get("tool_calls") or [])
                if isinstance(tc, dict)
            ],
            tool_invocation_ref=data.get("tool_call_id") or None,
            name=data.get("name") or None
        )

    def to_dict(self) -> Dict[str, Any]:
        """Sérialise le message; les champs optionnels vides sont omis."""
        result = {"role": self.role, "content": self.content}
        if self.reasoning_trace:
            result["reasoning_content"] = self.reasoning_trace
        if self.tool_invocations:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_invocations]
        if self.tool_invocation_ref:
            result["tool_call_id"] = self.tool_invocation_ref
        if self.name:
            result["name"] = self.name
        return result


@dataclass
class FrontRequest:
    """Requête chat-completions telle qu'envoyée par le client (schéma OpenAI)."""
    model: str
    messages: List[ChatMessage]
    stream: bool = False
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    tools: List[ToolSpec] = field(default_factory=list)
    tool_choice: Union[str, Dict[str, Any], None] = None
    legacy_functions: List[FunctionSpec] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FrontRequest":
        """
        Construit la requête depuis le corps JSON décodé.

        Raises:
            InvalidRequestError: si la structure est inexploitable
                (corps non-objet, messages absents ou mal formés)
        """
        if not isinstance(data, dict):
            raise InvalidRequestError("Le corps de la requête doit être un objet JSON")

        messages = data.get("messages")
        if not isinstance(messages, list):
            raise InvalidRequestError("Le champ 'messages' doit être une liste", field="messages")

        model = data.get("model") or ""
        if not isinstance(model, str):
            raise InvalidRequestError("Le champ 'model' doit être une chaîne", field="model")

        temperature = data.get("temperature")
        if temperature is not None and (isinstance(temperature, bool) or not isinstance(temperature, (int, float))):
            raise InvalidRequestError("Le champ 'temperature' doit être numérique", field="temperature")

        max_tokens = data.get("max_tokens")
        if max_tokens is not None and (isinstance(max_tokens, bool) or not isinstance(max_tokens, int)):
            raise InvalidRequestError("Le champ 'max_tokens' doit être entier", field="max_tokens")

        stream = data.get("stream")
        if stream is not None and not isinstance(stream, bool):
            raise InvalidRequestError("Le champ 'stream' doit être booléen", field="stream")

        return cls(
            model=model,
            messages=[ChatMessage.from_dict(m) for m in messages],
            stream=bool(stream),
            temperature=float(temperature) if temperature is not None else None,
            max_output_tokens=max_tokens,
            tools=[ToolSpec.from_dict(t) for t in (data.get("tools") or []) if isinstance(t, dict)],
            tool_choice=data.get("tool_choice"),
            legacy_functions=[
                FunctionSpec.from_dict(f) for f in (data.get("functions") or [])
                if isinstance(f, dict)
            ]
        )


@dataclass
class BackRequest:
    """Requête au format DeepSeek, prête à être sérialisée."""
    model: str
    messages: List[ChatMessage]
    stream: bool = False
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    tools: List[ToolSpec] = field(default_factory=list)
    tool_choice: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "stream": self.stream
        }
        if self.temperature is not None:
            result["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            result["max_tokens"] = self.max_output_tokens
        if self.tools:
            result["tools"] = [t.to_dict() for t in self.tools]
        if self.tool_choice is not None:
            result["tool_choice"] = self.tool_choice
        return result


@dataclass
class Usage:
    """Compteurs de tokens. Les champs inconnus sont conservés tels quels."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Usage":
        data = data or {}
        known = ("prompt_tokens", "completion_tokens", "total_tokens")
        return cls(
            prompt_tokens=data.get("prompt_tokens", 0),
            completion_tokens=data.get("completion_tokens", 0),
            total_tokens=data.get("total_tokens", 0),
            extra={k: v for k, v in data.items() if k not in known}
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens
        }
        result.update(self.extra)
        return result


@dataclass
class Choice:
    """Un choix de complétion."""
    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Choice":
        message = data.get("message") or {"role": "assistant"}
        if not message.get("role"):
            message = {**message, "role": "assistant"}
        return cls(
            index=data.get("index", 0),
            message=ChatMessage.from_dict(message),
            finish_reason=data.get("finish_reason")
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "message": self.message.to_dict(),
            "finish_reason": self.finish_reason
        }


@dataclass
class BackResponse:
    """Réponse complète (non-streaming) du backend DeepSeek."""
    id: str
    created: int
    model: str
    choices: List[Choice] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    object: str = "chat.completion"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackResponse":
        return cls(
            id=data.get("id", ""),
            created=data.get("created", 0),
            model=data.get("model", ""),
            choices=[Choice.from_dict(c) for c in (data.get("choices") or []) if isinstance(c, dict)],
            usage=Usage.from_dict(data.get("usage")),
            object=data.get("object", "chat.completion")
        )


@dataclass
class FrontResponse:
    """Réponse renvoyée au client, au format OpenAI."""
    id: str
    created: int
    model: str
    choices: List[Choice] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    object: str = "chat.completion"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "choices": [c.to_dict() for c in self.choices],
            "usage": self.usage.to_dict()
        }


_JSON_WS = re.compile(r"[ \t\n\r]*")
_JSON_DECODER = json.JSONDecoder()


def _member_value_span(text: str, key: str) -> Optional[Tuple[int, int]]:
    """
    Position (début, fin) de la valeur d'un membre de premier niveau d'un
    objet JSON déjà validé. En cas de clé dupliquée, la dernière l'emporte
    (comme ``json.loads``).
    """
    span = None
    idx = _JSON_WS.match(text, 0).end() + 1  # après "{"
    while True:
        idx = _JSON_WS.match(text, idx).end()
        if text[idx] == "}":
            return span
        name, idx = json.decoder.scanstring(text, idx + 1)
        idx = _JSON_WS.match(text, idx).end() + 1  # après ":"
        start = _JSON_WS.match(text, idx).end()
        _, end = _JSON_DECODER.raw_decode(text, start)
        if name == key:
            span = (start, end)
        idx = _JSON_WS.match(text, end).end()
        if text[idx] != ",":
            return span
        idx += 1


@dataclass
class StreamChunk:
    """
    Payload JSON d'un frame ``data:`` du stream backend.

    Seul ``model`` est interprété: le texte brut (``raw``) est conservé
    octet pour octet et seule la valeur de ``model`` y est remplacée.
    """
    model: Optional[str]
    raw: str
    model_span: Optional[Tuple[int, int]] = None

    @classmethod
    def parse(cls, payload: str) -> "StreamChunk":
        """
        Raises:
            ValueError: si le payload n'est pas un objet JSON
        """
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("Le chunk SSE n'est pas un objet JSON")
        model = data.get("model")
        span = _member_value_span(payload, "model") if "model" in data else None
        return cls(model=model if isinstance(model, str) else None, raw=payload, model_span=span)

    def with_model(self, model: str) -> "StreamChunk":
        """Copie du chunk avec la valeur de ``model`` remplacée sur place."""
        if self.model_span is None:
            return StreamChunk(model=self.model, raw=self.raw)
        start, end = self.model_span
        value = json.dumps(model, ensure_ascii=False)
        return StreamChunk(
            model=model,
            raw=self.raw[:start] + value + self.raw[end:],
            model_span=(start, start + len(value))
        )

    def to_json(self) -> str:
        return self.raw


def clone_invocations(invocations: List[ToolInvocation]) -> List[ToolInvocation]:
    """Copie profonde d'une liste d'appels d'outils (ordre et ids préservés)."""
    return [copy.deepcopy(tc) for tc in invocations]
