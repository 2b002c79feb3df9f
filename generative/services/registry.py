"""In-memory model registry, the source of truth for "is this model usable"."""

import asyncio
from collections.abc import Callable

from generative.schemas.models import ModelCapabilities, ModelConfig, ModelStatus


def default_model_config(model_id: str, name: str | None = None, config: dict | None = None) -> ModelConfig:
    """Config materialized for a model first observed on the host."""
    return ModelConfig(
        id=model_id,
        name=name or model_id,
        provider="ollama",
        capabilities=ModelCapabilities(),
        config=config,
    )


class ModelRegistry:
    """Model configs and statuses keyed by model id.

    Read-modify-write updates hold a per-model ``asyncio.Lock`` so concurrent
    calls for the same model never interleave their mutations. Values handed
    out are copies; callers change registry state only through the update
    methods.
    """

    def __init__(self):
        self._configs: dict[str, ModelConfig] = {}
        self._statuses: dict[str, ModelStatus] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, model_id: str) -> asyncio.Lock:
        lock = self._locks.get(model_id)
        if lock is None:
            lock = self._locks.setdefault(model_id, asyncio.Lock())
        return lock

    # ── Configs ──────────────────────────────────────────────────────────────

    def seed(self, config: ModelConfig) -> None:
        """Register a built-in config at construction time, before any concurrent use."""
        self._configs[config.id] = config

    def get_config(self, model_id: str) -> ModelConfig | None:
        config = self._configs.get(model_id)
        return config.model_copy(deep=True) if config else None

    async def ensure_config(self, model_id: str, factory: Callable[[], ModelConfig]) -> ModelConfig:
        """Return the cached config, creating it with ``factory`` if absent."""
        async with self.lock_for(model_id):
            config = self._configs.get(model_id)
            if config is None:
                config = factory()
                self._configs[model_id] = config
            return config.model_copy(deep=True)

    async def update_config(self, model_id: str, **changes) -> ModelConfig | None:
        async with self.lock_for(model_id):
            config = self._configs.get(model_id)
            if config is None:
                return None
            updated = config.model_copy(update=changes, deep=True)
            self._configs[model_id] = updated
            return updated.model_copy(deep=True)

    # ── Statuses ─────────────────────────────────────────────────────────────

    def get_status(self, model_id: str) -> ModelStatus | None:
        status = self._statuses.get(model_id)
        return status.model_copy() if status else None

    async def set_status(self, model_id: str, status: ModelStatus) -> ModelStatus:
        async with self.lock_for(model_id):
            self._statuses[model_id] = status.model_copy()
        return status

    async def update_status(self, model_id: str, **changes) -> ModelStatus:
        """Apply ``changes`` to the current (or default) status for ``model_id``."""
        async with self.lock_for(model_id):
            current = self._statuses.get(model_id) or ModelStatus()
            updated = current.model_copy(update=changes)
            self._statuses[model_id] = updated
            return updated.model_copy()

    def discard(self, model_id: str) -> None:
        """Forget the status and idle lock of a model that has no config."""
        self._statuses.pop(model_id, None)
        lock = self._locks.get(model_id)
        if lock is not None and not lock.locked():
            del self._locks[model_id]

    def clear(self) -> None:
        self._configs.clear()
        self._statuses.clear()
        self._locks.clear()
