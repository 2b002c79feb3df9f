from fastapi import APIRouter, Depends

from generative.client import GenerativeClient
from generative.dependencies import get_client

router = APIRouter()


@router.get("/health")
async def health(client: GenerativeClient = Depends(get_client)) -> dict:
    host_ok = await client.host.health_check()
    return {"status": "ok" if host_ok else "degraded", "host": "up" if host_ok else "down"}
