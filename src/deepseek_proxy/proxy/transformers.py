"""
Transformations de format entre le schéma OpenAI (client) et DeepSeek (backend).

Aucune fonction de ce module ne lève pour un modèle inconnu ou un
tool_choice non supporté: la requête est dégradée vers des valeurs sûres
et l'événement est journalisé.
"""
import logging
from typing import List

from ..core.constants import DEFAULT_TEMPERATURE, REASONING_MODE_MERGED, REASONING_MODE_SEPARATE
from ..core.models import (
    BackRequest,
    BackResponse,
    ChatMessage,
    Choice,
    FrontRequest,
    FrontResponse,
    ToolSpec,
    Usage,
    clone_invocations,
)
from .router import ModelPolicyTable
from .tool_utils import (
    convert_messages,
    convert_tool_choice,
    count_tool_invocations,
    functions_to_tools,
    log_degradation,
)

logger = logging.getLogger(__name__)


def translate_request(
    front: FrontRequest,
    table: ModelPolicyTable,
    request_id: str = "-"
) -> BackRequest:
    """
    Convertit une requête OpenAI en requête DeepSeek.

    Args:
        front: Requête client décodée
        table: Table de politique des modèles
        request_id: Identifiant de requête pour les logs

    Returns:
        Requête backend prête à être envoyée
    """
    backend_model, degraded = table.resolve(front.model)
    if degraded:
        log_degradation(request_id, "Modèle inconnu, modèle par défaut utilisé", "model", front.model, backend_model)
    else:
        logger.info(f"[{request_id}] Modèle mappé: {front.model} → {backend_model}")

    policy = table.policy_for(backend_model)
    messages = convert_messages(front.messages, request_id)

    back = BackRequest(
        model=backend_model,
        messages=messages,
        stream=front.stream,
        max_output_tokens=front.max_output_tokens
    )

    # Les modèles de raisonnement rejettent les paramètres d'échantillonnage
    if policy.ignores_sampling_params:
        if front.temperature is not None:
            logger.info(f"[{request_id}] temperature={front.temperature} ignorée pour {backend_model}")
    else:
        back.temperature = front.temperature if front.temperature is not None else DEFAULT_TEMPERATURE

    tools = _resolve_tools(front)
    if tools:
        back.tools = tools
        back.tool_choice = convert_tool_choice(front.tool_choice, request_id)
        logger.info(
            f"[{request_id}] {len(tools)} outil(s), tool_choice={back.tool_choice}"
        )

    invocations = count_tool_invocations(messages)
    if invocations:
        logger.debug(f"[{request_id}] {invocations} tool call(s) dans l'historique")

    return back


def _resolve_tools(front: FrontRequest) -> List[ToolSpec]:
    if front.tools:
        return list(front.tools)
    if front.legacy_functions:
        return functions_to_tools(front.legacy_functions)
    return []


def translate_response(
    back: BackResponse,
    requested_model: str,
    table: ModelPolicyTable,
    reasoning_mode: str = REASONING_MODE_SEPARATE,
    backend_model: str = None,
    request_id: str = "-"
) -> FrontResponse:
    """
    Convertit une réponse DeepSeek complète au format OpenAI.

    Le champ ``model`` est toujours celui demandé par le client: la
    traduction ne doit jamais être visible. La classe du modèle (raisonnement
    ou non) est déterminée par ``backend_model`` (modèle envoyé), à défaut
    par le modèle annoncé dans la réponse.
    """
    policy = table.policy_for(backend_model or back.model)
    choices = [
        Choice(
            index=choice.index,
            message=_rebuild_message(choice.message, policy.is_reasoning, reasoning_mode, request_id),
            finish_reason=choice.finish_reason
        )
        for choice in back.choices
    ]

    return FrontResponse(
        id=back.id,
        created=back.created,
        model=requested_model,
        choices=choices,
        usage=Usage(
            prompt_tokens=back.usage.prompt_tokens,
            completion_tokens=back.usage.completion_tokens,
            total_tokens=back.usage.total_tokens,
            extra=dict(back.usage.extra)
        )
    )


def _rebuild_message(
    message: ChatMessage,
    is_reasoning_model: bool,
    reasoning_mode: str,
    request_id: str
) -> ChatMessage:
    content = message.content
    reasoning = None

    if message.reasoning_trace:
        if reasoning_mode == REASONING_MODE_MERGED:
            content = message.reasoning_trace + "\n\n" + message.content
            logger.debug(f"[{request_id}] Raisonnement fusionné dans content ({len(content)} caractères)")
        elif is_reasoning_model:
            reasoning = message.reasoning_trace

    return ChatMessage(
        role=message.role,
        content=content,
        reasoning_trace=reasoning,
        tool_invocations=clone_invocations(message.tool_invocations),
        tool_invocation_ref=message.tool_invocation_ref,
        name=message.name
    )
