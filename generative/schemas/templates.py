import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Model configuration options ──────────────────────────────────────────────


class ModelParameters(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    context_length: int | None = Field(default=None, ge=1)
    gpu_layers: int | None = Field(default=None, ge=0)
    quantization: str | None = None
    threads: int | None = Field(default=None, ge=1)
    batch_size: int | None = Field(default=None, ge=1)
    model_params: dict | None = None


class ResourceLimits(BaseModel):
    max_memory: int | None = Field(default=None, ge=0)
    max_gpu_memory: int | None = Field(default=None, ge=0)
    cpu_cores: int | None = Field(default=None, ge=1)


class PerformanceFlags(BaseModel):
    use_gpu: bool | None = None
    use_metal: bool | None = None
    use_tensor_cores: bool | None = None


class ModelConfigOptions(BaseModel):
    parameters: ModelParameters | None = None
    resources: ResourceLimits | None = None
    performance: PerformanceFlags | None = None


# ── Config templates ─────────────────────────────────────────────────────────


class HardwareRequirements(BaseModel):
    min_memory: int | None = None
    min_gpu_memory: int | None = None
    gpu_required: bool | None = None
    metal_support: bool | None = None


class ConfigTemplate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    name: str
    description: str = ""
    hardware: HardwareRequirements | None = None
    config: ModelConfigOptions
    model_patterns: list[str] = Field(default_factory=lambda: ["*"])


# ── Prompt templates ─────────────────────────────────────────────────────────


class VariableValidation(BaseModel):
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)
    pattern: str | None = None

    @field_validator("pattern")
    @classmethod
    def pattern_compiles(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid regular expression: {e}") from e
        return value


class TemplateVariable(BaseModel):
    name: str
    description: str = ""
    required: bool = False
    default_value: str | None = None
    validation: VariableValidation | None = None


class ModelSettings(BaseModel):
    models: list[str] = Field(default_factory=list)
    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(default=None, ge=0, le=1)
    config_template: str | None = None


class TemplateExample(BaseModel):
    description: str = ""
    variables: dict[str, str] = Field(default_factory=dict)
    output: str = ""


class PromptTemplate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    name: str
    description: str = ""
    template: str
    variables: list[TemplateVariable] = Field(default_factory=list)
    system_template: str | None = None
    model_settings: ModelSettings | None = None
    examples: list[TemplateExample] = Field(default_factory=list)
