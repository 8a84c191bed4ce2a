"""
Utilitaires pour les outils et messages dans le proxy.
DeepSeek n'accepte que le format ``tools`` et une stratégie
``tool_choice`` sous forme de chaîne ("auto" / "none").
"""
import logging
from typing import Any, List

from ..core.exceptions import TranslationDegraded
from ..core.models import ChatMessage, FunctionSpec, ToolSpec, clone_invocations

logger = logging.getLogger(__name__)

TOOL_CHOICE_AUTO = "auto"
TOOL_CHOICE_NONE = "none"
PASSTHROUGH_TOOL_CHOICES = (TOOL_CHOICE_AUTO, TOOL_CHOICE_NONE)

# Rôle historique OpenAI -> rôle DeepSeek
ROLE_ALIASES = {"function": "tool"}


def log_degradation(request_id: str, message: str, field: str, original: Any, applied: Any) -> TranslationDegraded:
    """Journalise une dégradation de traduction (jamais levée)."""
    event = TranslationDegraded(message, field=field, original=original, applied=applied)
    logger.warning(f"[{request_id}] {event}")
    return event


def convert_tool_choice(choice: Any, request_id: str = "-") -> str:
    """
    Convertit la stratégie tool_choice client en chaîne DeepSeek.

    - None -> "auto"
    - "auto" / "none" -> inchangé
    - autre chaîne, objet {"type": "function", ...} ou valeur inattendue -> "auto"

    Le backend ne sait pas forcer une fonction précise: les demandes
    d'épinglage sont rétrogradées, jamais rejetées.
    """
    if choice is None:
        return TOOL_CHOICE_AUTO

    if isinstance(choice, str):
        if choice in PASSTHROUGH_TOOL_CHOICES:
            return choice
        log_degradation(request_id, "tool_choice inconnu", "tool_choice", choice, TOOL_CHOICE_AUTO)
        return TOOL_CHOICE_AUTO

    if isinstance(choice, dict) and choice.get("type") == "function":
        function_name = (choice.get("function") or {}).get("name")
        log_degradation(request_id, "tool_choice épinglé non supporté", "tool_choice", function_name, TOOL_CHOICE_AUTO)
        return TOOL_CHOICE_AUTO

    log_degradation(request_id, "tool_choice non reconnu", "tool_choice", type(choice).__name__, TOOL_CHOICE_AUTO)
    return TOOL_CHOICE_AUTO


def functions_to_tools(functions: List[FunctionSpec]) -> List[ToolSpec]:
    """Convertit le format ``functions`` historique en ``tools``."""
    return [ToolSpec(function=fn, kind="function") for fn in functions]


def normalize_role(role: str) -> str:
    return ROLE_ALIASES.get(role, role)


def convert_messages(messages: List[ChatMessage], request_id: str = "-") -> List[ChatMessage]:
    """
    Copie les messages au format DeepSeek.

    - rôle "function" -> "tool"
    - tool_calls copiés en profondeur (ordre et ids préservés), type forcé à "function"
    - reasoning_content des tours précédents non renvoyé (le backend le refuse en entrée)
    """
    converted = []
    for msg in messages:
        role = normalize_role(msg.role)
        if role != msg.role:
            logger.debug(f"[{request_id}] Rôle '{msg.role}' converti en '{role}'")

        invocations = clone_invocations(msg.tool_invocations)
        for invocation in invocations:
            invocation.kind = "function"

        converted.append(ChatMessage(
            role=role,
            content=msg.content,
            tool_invocations=invocations,
            tool_invocation_ref=msg.tool_invocation_ref,
            name=msg.name
        ))
    return converted


def count_tool_invocations(messages: List[ChatMessage]) -> int:
    return sum(len(m.tool_invocations) for m in messages)
