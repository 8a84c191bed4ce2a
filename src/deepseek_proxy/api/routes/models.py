"""Routes API pour la liste des modèles (format OpenAI)."""

import time
from typing import Any, Dict, List

from fastapi import APIRouter, Request

from ...core.constants import SERVICE_NAME
from ...core.exceptions import InvalidRequestError

router = APIRouter()


def _build_openai_models_list(model_ids: List[str], created: int) -> List[Dict[str, Any]]:
    return [
        {
            "id": model_id,
            "object": "model",
            "created": created,
            "owned_by": SERVICE_NAME,
        }
        for model_id in model_ids
    ]


@router.get("/v1/models")
@router.get("/models")
async def openai_models(request: Request) -> Dict[str, Any]:
    """Endpoint OpenAI-compatible: GET /v1/models."""
    table = request.app.state.table
    return {
        "object": "list",
        "data": _build_openai_models_list(table.supported_models(), int(time.time())),
    }


@router.get("/v1/models/{model_id}")
async def openai_model_detail(model_id: str, request: Request) -> Dict[str, Any]:
    """Détail d'un alias: modèle backend cible et capacités."""
    description = request.app.state.table.describe(model_id)
    if description is None:
        raise InvalidRequestError(f"Modèle inconnu: {model_id}", field="model")
    return {"object": "model", "owned_by": SERVICE_NAME, **description}
