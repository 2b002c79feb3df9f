from abc import ABC, abstractmethod

from generative.schemas.generate import GenerateOverrides
from generative.schemas.models import ModelConfig, ModelStatus
from generative.schemas.templates import ConfigTemplate, ModelConfigOptions, PromptTemplate


class ModelManager(ABC):
    @abstractmethod
    async def list_models(self) -> list[ModelConfig]:
        """List models known to the host, merged with cached configs."""
        ...

    @abstractmethod
    async def get_model(self, model_id: str) -> ModelConfig | None:
        """Return the model's config, or None if the host does not know it."""
        ...

    @abstractmethod
    async def get_model_status(self, model_id: str) -> ModelStatus:
        """Query the host and return the refreshed status."""
        ...

    @abstractmethod
    async def preload_model(self, model_id: str, config: ModelConfigOptions | None = None) -> None:
        """Load a model (optionally applying configuration first)."""
        ...

    @abstractmethod
    async def unload_model(self, model_id: str) -> None:
        """Unload a model if it is loaded."""
        ...

    @abstractmethod
    async def update_model_config(self, model_id: str, config: ModelConfigOptions) -> None:
        """Apply configuration, reloading the model if it is loaded."""
        ...


class TemplateManager(ABC):
    @abstractmethod
    async def list_config_templates(self) -> list[ConfigTemplate]:
        ...

    @abstractmethod
    async def get_config_template(self, template_id: str) -> ConfigTemplate | None:
        ...

    @abstractmethod
    async def list_prompt_templates(self) -> list[PromptTemplate]:
        ...

    @abstractmethod
    async def get_prompt_template(self, template_id: str) -> PromptTemplate | None:
        ...

    @abstractmethod
    async def apply_config_template(self, model_id: str, template_id: str) -> None:
        """Apply a config template to a model whose id matches one of its patterns."""
        ...

    @abstractmethod
    async def generate_from_template(
        self,
        template_id: str,
        variables: dict[str, str],
        options: GenerateOverrides | None = None,
    ) -> str:
        """Resolve a prompt template and generate from it."""
        ...
