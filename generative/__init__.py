"""Client-side orchestration over a local Ollama model host."""

from generative.client import ClientOptions, GenerativeClient
from generative.core.exceptions import GenerativeError, GenerativeErrorCode
from generative.services.engine import StreamHandler

__version__ = "0.1.0"

__all__ = [
    "ClientOptions",
    "GenerativeClient",
    "GenerativeError",
    "GenerativeErrorCode",
    "StreamHandler",
    "__version__",
]
