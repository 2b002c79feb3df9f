from fastapi import APIRouter, Depends

from generative.client import GenerativeClient
from generative.core.exceptions import GenerativeError, GenerativeErrorCode
from generative.dependencies import get_client
from generative.schemas.models import (
    ModelActionResponse,
    ModelConfig,
    ModelConfigUpdate,
    ModelPreloadRequest,
    ModelStatus,
)

router = APIRouter()


@router.get("/v1/models")
async def list_models(client: GenerativeClient = Depends(get_client)) -> list[ModelConfig]:
    return await client.list_models()


@router.get("/v1/models/{model_id}")
async def get_model(model_id: str, client: GenerativeClient = Depends(get_client)) -> ModelConfig:
    model = await client.get_model(model_id)
    if model is None:
        raise GenerativeError(
            f"Model '{model_id}' not found",
            GenerativeErrorCode.INVALID_MODEL,
            context={"model_id": model_id},
        )
    return model


@router.get("/v1/models/{model_id}/status")
async def get_model_status(model_id: str, client: GenerativeClient = Depends(get_client)) -> ModelStatus:
    return await client.get_model_status(model_id)


@router.post("/v1/models/{model_id}/preload")
async def preload_model(
    model_id: str,
    body: ModelPreloadRequest | None = None,
    client: GenerativeClient = Depends(get_client),
) -> ModelActionResponse:
    await client.preload_model(model_id, body.config if body else None)
    return ModelActionResponse(model_id=model_id, status=await client.get_model_status(model_id))


@router.post("/v1/models/{model_id}/unload")
async def unload_model(model_id: str, client: GenerativeClient = Depends(get_client)) -> ModelActionResponse:
    await client.unload_model(model_id)
    return ModelActionResponse(model_id=model_id, status=await client.get_model_status(model_id))


@router.put("/v1/models/{model_id}/config")
async def update_model_config(
    model_id: str,
    body: ModelConfigUpdate,
    client: GenerativeClient = Depends(get_client),
) -> ModelConfig:
    await client.update_model_config(model_id, body.config)
    return await client.get_model(model_id)
