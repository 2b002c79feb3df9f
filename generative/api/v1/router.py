from fastapi import APIRouter

from generative.api.v1.generate import router as generate_router
from generative.api.v1.health import router as health_router
from generative.api.v1.models import router as models_router
from generative.api.v1.templates import router as templates_router

v1_router = APIRouter()

v1_router.include_router(generate_router, tags=["Generate"])
v1_router.include_router(models_router, tags=["Models"])
v1_router.include_router(templates_router, tags=["Templates"])
v1_router.include_router(health_router, tags=["Health"])
