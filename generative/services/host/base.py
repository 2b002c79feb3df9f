from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


class HostError(Exception):
    """Failure reported by (or while talking to) the model host.

    The message carries the phrases the generation engine classifies on
    ("rate limit", "network", "timeout", "model not found").
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    @property
    def not_found(self) -> bool:
        lowered = self.message.lower()
        return self.status_code == 404 or "model not found" in lowered or "no such model" in lowered


class ModelHost(ABC):
    @abstractmethod
    async def list_models(self) -> list[dict]:
        """List models known to the host (raw tag entries)."""
        ...

    @abstractmethod
    async def list_running_models(self) -> set[str]:
        """Names of the models currently loaded in memory."""
        ...

    @abstractmethod
    async def show_model(self, model_id: str, options: dict | None = None) -> dict:
        """Fetch model metadata; with ``options`` this doubles as the reconfiguration call."""
        ...

    @abstractmethod
    async def pull_model(self, model_id: str) -> None:
        """Make sure the model is present on the host."""
        ...

    @abstractmethod
    async def load_model(self, model_id: str, options: dict | None = None) -> None:
        """Load the model into memory."""
        ...

    @abstractmethod
    async def unload_model(self, model_id: str) -> None:
        """Evict the model from memory."""
        ...

    @abstractmethod
    async def generate(self, payload: dict) -> dict:
        """Run a non-streaming generation and return the final response object."""
        ...

    @abstractmethod
    def generate_stream(self, payload: dict) -> AsyncIterator[dict]:
        """Yield partial-response chunks in the order the host sends them."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the host is responsive."""
        ...
