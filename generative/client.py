"""GenerativeClient: the public entry point tying registry, templates, lifecycle and generation together."""

from dataclasses import dataclass, field

import httpx

from generative.config import settings
from generative.core.exceptions import GenerativeError, GenerativeErrorCode
from generative.core.logging import GenerativeLogger, SafeLogger, StructlogLogger
from generative.schemas.generate import GenerateOverrides, GenerateRequest
from generative.schemas.models import ModelConfig, ModelStatus
from generative.schemas.templates import ConfigTemplate, ModelConfigOptions, PromptTemplate
from generative.services.base import ModelManager, TemplateManager
from generative.services.engine import GenerationEngine, StreamHandler
from generative.services.host.base import ModelHost
from generative.services.host.ollama_client import OllamaHost
from generative.services.lifecycle import ModelLifecycleManager
from generative.services.registry import ModelRegistry, default_model_config
from generative.services.resolver import TemplateResolver, unresolved_placeholders
from generative.services.template_store import (
    ConfigTemplateStore,
    PromptTemplateStore,
    default_config_templates,
    default_prompt_templates,
    load_templates_file,
)


@dataclass
class ClientOptions:
    """Construction-time configuration. Unset fields fall back to ``settings``."""

    host: str = field(default_factory=lambda: settings.ollama_host)
    max_retries: int = field(default_factory=lambda: settings.generative_max_retries)
    base_retry_delay_ms: int = field(default_factory=lambda: settings.generative_base_retry_delay_ms)
    default_model: str = field(default_factory=lambda: settings.generative_default_model)
    templates_path: str | None = field(default_factory=lambda: settings.generative_templates_path)
    logger: GenerativeLogger | None = None


class GenerativeClient(ModelManager, TemplateManager):
    def __init__(
        self,
        options: ClientOptions | None = None,
        model_host: ModelHost | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        options = options or ClientOptions()
        self._logger = SafeLogger(options.logger or StructlogLogger())

        try:
            if options.max_retries < 0:
                raise ValueError("max_retries must be >= 0")
            if options.base_retry_delay_ms < 0:
                raise ValueError("base_retry_delay_ms must be >= 0")
            self._host = model_host or OllamaHost(
                base_url=options.host,
                http_client=http_client or httpx.AsyncClient(
                    timeout=httpx.Timeout(
                        connect=settings.generative_http_connect_timeout,
                        read=settings.generative_http_read_timeout,
                        write=5.0,
                        pool=5.0,
                    )
                ),
            )
        except Exception as e:
            error = GenerativeError(
                "Failed to initialize Ollama client",
                GenerativeErrorCode.INITIALIZATION_FAILED,
                cause=e,
                context={"host": options.host},
            )
            self._logger.error("client_init_failed", error)
            raise error from e

        self._registry = ModelRegistry()
        self._registry.seed(default_model_config("llama2", name="Llama 2"))

        self._config_templates = ConfigTemplateStore(default_config_templates())
        self._prompt_templates = PromptTemplateStore(default_prompt_templates())
        if options.templates_path:
            load_templates_file(options.templates_path, self._config_templates, self._prompt_templates)

        self._lifecycle = ModelLifecycleManager(
            host=self._host,
            registry=self._registry,
            config_templates=self._config_templates,
            logger=self._logger,
        )
        self._resolver = TemplateResolver(default_model=options.default_model)
        self._engine = GenerationEngine(
            host=self._host,
            registry=self._registry,
            lifecycle=self._lifecycle,
            logger=self._logger,
            max_retries=options.max_retries,
            base_retry_delay_ms=options.base_retry_delay_ms,
            default_model=options.default_model,
        )
        self._logger.info("generative_client_initialized", host=options.host)

    @property
    def host(self) -> ModelHost:
        return self._host

    @property
    def engine(self) -> GenerationEngine:
        return self._engine

    async def aclose(self) -> None:
        close = getattr(self._host, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "GenerativeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ── ModelManager ─────────────────────────────────────────────────────────

    async def list_models(self) -> list[ModelConfig]:
        return await self._lifecycle.list_models()

    async def get_model(self, model_id: str) -> ModelConfig | None:
        return await self._lifecycle.get_model(model_id)

    async def get_model_status(self, model_id: str) -> ModelStatus:
        return await self._lifecycle.get_model_status(model_id)

    async def preload_model(self, model_id: str, config: ModelConfigOptions | None = None) -> None:
        await self._lifecycle.preload_model(model_id, config)

    async def unload_model(self, model_id: str) -> None:
        await self._lifecycle.unload_model(model_id)

    async def update_model_config(self, model_id: str, config: ModelConfigOptions) -> None:
        await self._lifecycle.update_model_config(model_id, config)

    # ── TemplateManager ──────────────────────────────────────────────────────

    async def list_config_templates(self) -> list[ConfigTemplate]:
        return self._config_templates.list()

    async def get_config_template(self, template_id: str) -> ConfigTemplate | None:
        return self._config_templates.get(template_id)

    async def list_prompt_templates(self) -> list[PromptTemplate]:
        return self._prompt_templates.list()

    async def get_prompt_template(self, template_id: str) -> PromptTemplate | None:
        return self._prompt_templates.get(template_id)

    def register_config_template(self, template: ConfigTemplate) -> None:
        self._config_templates.register(template)

    def register_prompt_template(self, template: PromptTemplate) -> None:
        self._prompt_templates.register(template)

    async def compatible_config_templates(self, model_id: str) -> list[ConfigTemplate]:
        return self._config_templates.compatible_templates(model_id)

    async def apply_config_template(self, model_id: str, template_id: str) -> None:
        await self._lifecycle.apply_config_template(model_id, template_id)

    async def resolve_template(
        self,
        template_id: str,
        variables: dict[str, str],
        options: GenerateOverrides | None = None,
    ) -> tuple[GenerateRequest, str | None]:
        """Validate and substitute a prompt template without generating.

        Returns the assembled request and the config template it names (if any).
        """
        template = self._prompt_templates.get(template_id)
        if template is None:
            raise GenerativeError(
                f"Prompt template '{template_id}' not found",
                GenerativeErrorCode.VALIDATION_FAILED,
                context={"template_id": template_id},
            )

        resolved = self._resolver.resolve(template, variables, options)
        leftover = unresolved_placeholders(resolved.request.prompt)
        if leftover:
            self._logger.debug("template_placeholders_unresolved", template_id=template_id, placeholders=leftover)
        self._logger.log_template_usage(template_id, "prompt", model=resolved.request.model)
        return resolved.request, resolved.config_template

    async def generate_from_template(
        self,
        template_id: str,
        variables: dict[str, str],
        options: GenerateOverrides | None = None,
        stream_handler: StreamHandler | None = None,
    ) -> str:
        request, config_template = await self.resolve_template(template_id, variables, options)

        # The configuration has to be in effect before inference
        if config_template:
            await self.apply_config_template(request.model, config_template)

        return await self._engine.generate(request, stream_handler)

    # ── Generation ───────────────────────────────────────────────────────────

    async def generate(
        self,
        options: GenerateRequest | dict,
        stream_handler: StreamHandler | None = None,
    ) -> str:
        return await self._engine.generate(options, stream_handler)
