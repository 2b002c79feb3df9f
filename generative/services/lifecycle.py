"""Model lifecycle: discovery, status probing, preload/unload and reconfiguration."""

from datetime import datetime, timezone

from generative.core.exceptions import GenerativeError, GenerativeErrorCode
from generative.core.logging import GenerativeLogger
from generative.schemas.models import ModelConfig, ModelStatus
from generative.schemas.templates import ModelConfigOptions
from generative.services.host.base import HostError, ModelHost
from generative.services.registry import ModelRegistry, default_model_config
from generative.services.template_store import ConfigTemplateStore, matches_model_pattern


def _normalize_id(model_id: str) -> str:
    """Strip the :latest tag for comparison (the host may append it)."""
    return model_id.removesuffix(":latest")


def translate_config(config: ModelConfigOptions | None) -> dict:
    """Map abstract configuration options onto Ollama option names."""
    if config is None:
        return {}

    params: dict = {}
    if config.parameters:
        p = config.parameters
        if p.context_length:
            params["num_ctx"] = p.context_length
        if p.gpu_layers:
            params["num_gpu"] = p.gpu_layers
        if p.quantization:
            params["quantization"] = p.quantization
        if p.threads:
            params["num_thread"] = p.threads
        if p.batch_size:
            params["num_batch"] = p.batch_size
        if p.model_params:
            params.update(p.model_params)

    if config.resources:
        r = config.resources
        if r.max_memory:
            params["max_memory"] = r.max_memory
        if r.max_gpu_memory:
            params["max_gpu_memory"] = r.max_gpu_memory
        if r.cpu_cores:
            params["num_cpu"] = r.cpu_cores

    if config.performance:
        perf = config.performance
        if perf.use_gpu is not None:
            params["use_gpu"] = perf.use_gpu
        if perf.use_metal is not None:
            params["use_metal"] = perf.use_metal
        if perf.use_tensor_cores is not None:
            params["use_tensor_cores"] = perf.use_tensor_cores

    return params


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ModelLifecycleManager:
    """Owns every status mutation outside of generation itself."""

    def __init__(
        self,
        host: ModelHost,
        registry: ModelRegistry,
        config_templates: ConfigTemplateStore,
        logger: GenerativeLogger,
    ):
        self._host = host
        self._registry = registry
        self._config_templates = config_templates
        self._logger = logger

    async def list_models(self) -> list[ModelConfig]:
        try:
            entries = await self._host.list_models()
        except Exception as e:
            raise GenerativeError("Failed to list models", GenerativeErrorCode.INITIALIZATION_FAILED, cause=e) from e

        models = []
        for entry in entries:
            name = entry.get("name") or entry.get("model", "")
            models.append(await self._registry.ensure_config(name, lambda n=name: default_model_config(n)))

        self._logger.debug("models_listed", count=len(models))
        return models

    async def get_model(self, model_id: str) -> ModelConfig | None:
        cached = self._registry.get_config(model_id)
        if cached is not None:
            return cached

        try:
            info = await self._host.show_model(model_id)
        except Exception as e:
            if isinstance(e, HostError) and e.not_found:
                return None
            raise GenerativeError(
                "Failed to get model information",
                GenerativeErrorCode.INVALID_MODEL,
                cause=e,
                context={"model_id": model_id},
            ) from e

        return await self._registry.ensure_config(
            model_id, lambda: default_model_config(model_id, config=dict(info))
        )

    async def get_model_status(self, model_id: str) -> ModelStatus:
        """Query the host and persist the result.

        The model is ready when the host can show it, and loaded when it
        appears among the host's running models. Ids the host does not know
        and the registry has never seen are reported but not tracked.
        """
        try:
            try:
                await self._host.show_model(model_id)
                running = {_normalize_id(name) for name in await self._host.list_running_models()}
                changes = {"loaded": _normalize_id(model_id) in running, "status": "ready", "error": None}
            except HostError as e:
                changes = {"loaded": False, "status": "error", "error": e.message}
                if e.not_found and self._registry.get_config(model_id) is None:
                    self._registry.discard(model_id)
                    return ModelStatus(**changes)
            return await self._registry.update_status(model_id, **changes)
        except Exception as e:
            raise GenerativeError(
                "Failed to get model status",
                GenerativeErrorCode.INVALID_MODEL,
                cause=e,
                context={"model_id": model_id},
            ) from e

    async def _apply_model_config(self, model_id: str, config: ModelConfigOptions | None) -> None:
        if config is None:
            return

        params = translate_config(config)
        try:
            info = await self._host.show_model(model_id, options=params)
        except Exception as e:
            raise GenerativeError(
                "Failed to apply model configuration",
                GenerativeErrorCode.INITIALIZATION_FAILED,
                cause=e,
                context={"model_id": model_id, "config_params": params},
            ) from e

        await self._registry.ensure_config(model_id, lambda: default_model_config(model_id, config=dict(info)))
        await self._registry.update_config(model_id, custom_config=config.model_copy(deep=True))
        self._logger.info("model_config_applied", model_id=model_id, config_params=params)
        self._logger.log_model_event("configure", model_id, config_params=params)

    async def _load(self, model_id: str, options: dict) -> None:
        await self._host.pull_model(model_id)
        await self._host.load_model(model_id, options=options or None)
        await self._registry.set_status(model_id, ModelStatus(loaded=True, status="ready", last_used=_now()))
        self._logger.log_model_event("load", model_id, options=options)

    async def _unload(self, model_id: str) -> None:
        await self._host.unload_model(model_id)
        await self._registry.set_status(model_id, ModelStatus(loaded=False, status="ready", last_used=_now()))
        self._logger.log_model_event("unload", model_id)

    async def update_model_config(self, model_id: str, config: ModelConfigOptions) -> None:
        try:
            if await self.get_model(model_id) is None:
                raise GenerativeError(
                    f"Model '{model_id}' not found",
                    GenerativeErrorCode.INVALID_MODEL,
                    context={"model_id": model_id},
                )

            await self._apply_model_config(model_id, config)

            status = await self.get_model_status(model_id)
            if status.loaded:
                # Reload once so the new settings take effect; the host's
                # running list may lag behind the unload
                self._logger.info("model_reloading", model_id=model_id)
                await self._unload(model_id)
                await self._load(model_id, translate_config(config))
        except GenerativeError:
            raise
        except Exception as e:
            raise GenerativeError(
                "Failed to update model configuration",
                GenerativeErrorCode.INITIALIZATION_FAILED,
                cause=e,
                context={"model_id": model_id, "config": config.model_dump(exclude_none=True)},
            ) from e

    async def preload_model(self, model_id: str, config: ModelConfigOptions | None = None) -> None:
        context = {"model_id": model_id, "config": config.model_dump(exclude_none=True) if config else None}
        try:
            status = await self.get_model_status(model_id)
            if status.loaded:
                self._logger.debug("model_already_loaded", model_id=model_id)
                if config is not None:
                    await self.update_model_config(model_id, config)
                return

            self._logger.info("model_preloading", **context)
            await self._apply_model_config(model_id, config)

            cached = self._registry.get_config(model_id)
            await self._load(model_id, translate_config(config or (cached.custom_config if cached else None)))
        except GenerativeError:
            raise
        except Exception as e:
            raise GenerativeError(
                "Failed to preload model",
                GenerativeErrorCode.INITIALIZATION_FAILED,
                cause=e,
                context=context,
            ) from e

    async def unload_model(self, model_id: str) -> None:
        try:
            status = await self.get_model_status(model_id)
            if not status.loaded:
                self._logger.debug("model_not_loaded", model_id=model_id)
                return

            self._logger.info("model_unloading", model_id=model_id)
            await self._unload(model_id)
        except GenerativeError:
            raise
        except Exception as e:
            raise GenerativeError(
                "Failed to unload model",
                GenerativeErrorCode.INITIALIZATION_FAILED,
                cause=e,
                context={"model_id": model_id},
            ) from e

    async def apply_config_template(self, model_id: str, template_id: str) -> None:
        template = self._config_templates.get(template_id)
        if template is None:
            raise GenerativeError(
                f"Configuration template '{template_id}' not found",
                GenerativeErrorCode.VALIDATION_FAILED,
                context={"template_id": template_id},
            )

        if not any(matches_model_pattern(model_id, p) for p in template.model_patterns):
            raise GenerativeError(
                f"Model '{model_id}' is not compatible with template '{template_id}'",
                GenerativeErrorCode.VALIDATION_FAILED,
                context={"model_id": model_id, "template_id": template_id, "patterns": template.model_patterns},
            )

        if template.hardware is not None:
            # TODO: check host memory/GPU/Metal and reject templates the machine cannot satisfy
            self._logger.warn(
                "hardware_requirements_check_not_implemented",
                model_id=model_id,
                template_id=template_id,
                requirements=template.hardware.model_dump(exclude_none=True),
            )

        self._logger.log_template_usage(template_id, "config", model_id=model_id)
        await self.update_model_config(model_id, template.config)
