from pathlib import Path
from typing import Generic, TypeVar

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from generative.core.exceptions import GenerativeError, GenerativeErrorCode
from generative.schemas.templates import ConfigTemplate, PromptTemplate

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)

GiB = 1024 * 1024 * 1024


def matches_model_pattern(model_id: str, pattern: str) -> bool:
    """``*`` matches everything, ``foo*`` is a prefix match, anything else is exact."""
    if pattern == "*":
        return True
    if pattern.endswith("*"):
        return model_id.startswith(pattern[:-1])
    return model_id == pattern


class TemplateStore(Generic[T]):
    """Templates keyed by id. Registering an existing id replaces it."""

    def __init__(self, templates: list[T] | None = None):
        self._templates: dict[str, T] = {}
        for template in templates or []:
            self.register(template)

    def register(self, template: T) -> None:
        self._templates[template.id] = template

    def get(self, template_id: str) -> T | None:
        return self._templates.get(template_id)

    def list(self) -> list[T]:
        return list(self._templates.values())

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)


class ConfigTemplateStore(TemplateStore[ConfigTemplate]):
    def compatible_templates(self, model_id: str) -> list[ConfigTemplate]:
        return [
            t for t in self._templates.values()
            if any(matches_model_pattern(model_id, p) for p in t.model_patterns)
        ]


class PromptTemplateStore(TemplateStore[PromptTemplate]):
    pass


def default_config_templates() -> list[ConfigTemplate]:
    return [
        ConfigTemplate.model_validate({
            "id": "low-memory",
            "name": "Low Memory Mode",
            "description": "Optimized for systems with limited memory",
            "hardware": {"min_memory": 4 * GiB, "gpu_required": False},
            "config": {
                "parameters": {
                    "context_length": 2048,
                    "quantization": "4bit",
                    "threads": 4,
                    "batch_size": 512,
                },
                "resources": {"max_memory": 4 * GiB},
                "performance": {"use_gpu": False},
            },
            "model_patterns": ["*"],
        }),
        ConfigTemplate.model_validate({
            "id": "gpu-optimized",
            "name": "GPU Optimized Mode",
            "description": "Optimized for systems with GPU",
            "hardware": {"min_gpu_memory": 8 * GiB, "gpu_required": True},
            "config": {
                "parameters": {"gpu_layers": 32, "batch_size": 1024},
                "performance": {"use_gpu": True, "use_tensor_cores": True},
            },
            "model_patterns": ["*"],
        }),
    ]


_CODE_REVIEW_TEMPLATE = """Review the following code changes and provide feedback:

Language: {{language}}
Code:
{{code}}

Please focus on:
- Code quality
- Best practices
- Potential issues
- Performance considerations"""

_CODE_REVIEW_EXAMPLE_OUTPUT = """Issues found:
1. Type safety: Parameters use 'any' type
2. Missing return type
3. No input validation

Suggested improvement:
```typescript
function add(a: number, b: number): number {
  return a + b;
}
```"""


def default_prompt_templates() -> list[PromptTemplate]:
    return [
        PromptTemplate.model_validate({
            "id": "code-review",
            "name": "Code Review",
            "description": "Review code changes and provide feedback",
            "template": _CODE_REVIEW_TEMPLATE,
            "variables": [
                {"name": "language", "description": "Programming language", "required": True},
                {
                    "name": "code",
                    "description": "Code to review",
                    "required": True,
                    "validation": {"min_length": 10},
                },
            ],
            "system_template": "You are an experienced code reviewer with expertise in {{language}}.",
            "model_settings": {
                "models": ["codellama", "llama2"],
                "temperature": 0.3,
                "config_template": "gpu-optimized",
            },
            "examples": [
                {
                    "description": "TypeScript code review",
                    "variables": {
                        "language": "TypeScript",
                        "code": "function add(a: any, b: any) { return a + b; }",
                    },
                    "output": _CODE_REVIEW_EXAMPLE_OUTPUT,
                }
            ],
        }),
    ]


def load_templates_file(
    path: str | Path,
    config_store: ConfigTemplateStore,
    prompt_store: PromptTemplateStore,
) -> tuple[int, int]:
    """Register templates from a YAML file with ``config_templates`` / ``prompt_templates`` lists.

    Returns the number of (config, prompt) templates registered.
    """
    path = Path(path)
    if not path.exists():
        raise GenerativeError(
            f"Template file '{path}' not found",
            GenerativeErrorCode.INITIALIZATION_FAILED,
            context={"path": str(path)},
        )
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    try:
        config_templates = [ConfigTemplate.model_validate(t) for t in data.get("config_templates", [])]
        prompt_templates = [PromptTemplate.model_validate(t) for t in data.get("prompt_templates", [])]
    except ValidationError as e:
        raise GenerativeError(
            f"Invalid template definition in '{path}'",
            GenerativeErrorCode.VALIDATION_FAILED,
            cause=e,
            context={"path": str(path)},
        ) from e

    for template in config_templates:
        config_store.register(template)
    for template in prompt_templates:
        prompt_store.register(template)

    logger.info(
        "templates_loaded",
        path=str(path),
        config_templates=len(config_templates),
        prompt_templates=len(prompt_templates),
    )
    return len(config_templates), len(prompt_templates)
