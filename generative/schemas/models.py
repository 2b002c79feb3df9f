from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from generative.schemas.templates import ModelConfigOptions


class ParameterRange(BaseModel):
    min: float
    max: float
    default: float


class ModelCapabilities(BaseModel):
    max_context_length: int = 4096
    streaming: bool = True
    system_prompts: bool = True
    temperature_range: ParameterRange = Field(
        default_factory=lambda: ParameterRange(min=0, max=2, default=0.7)
    )
    top_p_range: ParameterRange = Field(
        default_factory=lambda: ParameterRange(min=0, max=1, default=0.9)
    )


class ModelConfig(BaseModel):
    id: str
    name: str
    provider: str = "ollama"
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)
    config: dict | None = None  # raw metadata from the host's show call
    custom_config: ModelConfigOptions | None = None


class ModelStatus(BaseModel):
    loaded: bool = False
    status: Literal["loading", "ready", "error"] = "loading"
    error: str | None = None
    last_used: datetime | None = None


class ModelConfigUpdate(BaseModel):
    config: ModelConfigOptions


class ModelPreloadRequest(BaseModel):
    config: ModelConfigOptions | None = None


class ModelActionResponse(BaseModel):
    model_id: str
    status: ModelStatus
