from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from generative.api.v1.router import v1_router
from generative.client import ClientOptions, GenerativeClient
from generative.config import settings
from generative.core.exceptions import (
    GenerativeError,
    generative_error_handler,
    request_validation_error_handler,
)
from generative.core.logging import configure_logging

configure_logging(settings.generative_log_level)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    # A client may be injected before startup
    client = getattr(app.state, "client", None)
    owns_client = client is None
    if owns_client:
        client = GenerativeClient(ClientOptions())
        app.state.client = client

    logger.info("generative_api_starting", ollama_host=settings.ollama_host)
    yield

    if owns_client:
        await client.aclose()
        app.state.client = None
    logger.info("generative_api_stopping")


app = FastAPI(
    title="Generative",
    description="Orchestration API over a local Ollama model host",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(GenerativeError, generative_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)

app.include_router(v1_router)


@app.get("/")
async def root():
    return {"service": "generative", "version": "0.1.0"}
