from pydantic import BaseModel, ConfigDict, Field, field_validator


class GenerateRequest(BaseModel):
    """A single, fully-parameterized generation call."""

    model: str | None = None
    prompt: str = Field(min_length=1)
    system: str | None = None
    temperature: float = Field(default=0.7, ge=0, le=2)
    top_p: float = Field(default=0.9, ge=0, le=1)
    context: list[int] = Field(default_factory=list)
    stream: bool = False

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be blank")
        return value


class GenerateOverrides(BaseModel):
    """Caller overrides applied on top of a prompt template's defaults."""

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(default=None, ge=0, le=1)
    context: list[int] | None = None
    stream: bool | None = None


class GenerationMetrics(BaseModel):
    """Latest metrics snapshot reported by the host (counts and nanosecond durations)."""

    model_config = ConfigDict(extra="allow")

    prompt_eval_count: int = 0
    eval_count: int = 0
    total_duration: int = 0
    load_duration: int = 0
    prompt_eval_duration: int = 0
    eval_duration: int = 0
    context: list[int] = Field(default_factory=list)
    done: bool = False


class GenerationResult(GenerationMetrics):
    response: str = ""


class TemplateGenerateRequest(BaseModel):
    variables: dict[str, str] = Field(default_factory=dict)
    options: GenerateOverrides | None = None


class GenerateResponse(BaseModel):
    model: str
    response: str


class TemplateGenerateResponse(BaseModel):
    template_id: str
    response: str
