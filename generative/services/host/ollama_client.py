import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog

from generative.services.host.base import HostError, ModelHost

logger = structlog.get_logger()


def _error_text(response: httpx.Response) -> str:
    """Pull Ollama's ``{"error": "..."}`` message out of a failed response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"HTTP {response.status_code}"


def _raise_for_status(response: httpx.Response, model_id: str | None = None) -> None:
    if response.status_code < 400:
        return
    detail = _error_text(response)
    if response.status_code == 429:
        raise HostError(f"rate limit exceeded: {detail}", status_code=429)
    if response.status_code == 404:
        raise HostError(f"model not found: {model_id or detail}", status_code=404)
    raise HostError(f"host returned {response.status_code}: {detail}", status_code=response.status_code)


class OllamaHost(ModelHost):
    def __init__(self, base_url: str, http_client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=5.0, read=300.0, write=5.0, pool=5.0)
        )

    @asynccontextmanager
    async def _translate_errors(self):
        """Normalize httpx transport failures into HostError."""
        try:
            yield
        except httpx.ConnectError as e:
            raise HostError(f"network error: cannot connect to Ollama at {self.base_url}: {e}") from e
        except httpx.TimeoutException as e:
            raise HostError(f"request timeout talking to Ollama at {self.base_url}") from e
        except httpx.TransportError as e:
            raise HostError(f"network error: {e}") from e

    async def list_models(self) -> list[dict]:
        async with self._translate_errors():
            response = await self._client.get(f"{self.base_url}/api/tags")
        _raise_for_status(response)
        return response.json().get("models", [])

    async def list_running_models(self) -> set[str]:
        async with self._translate_errors():
            response = await self._client.get(f"{self.base_url}/api/ps")
        _raise_for_status(response)
        return {m.get("model", m.get("name", "")) for m in response.json().get("models", [])}

    async def show_model(self, model_id: str, options: dict | None = None) -> dict:
        payload: dict = {"model": model_id}
        if options:
            payload["options"] = options
        async with self._translate_errors():
            response = await self._client.post(f"{self.base_url}/api/show", json=payload)
        _raise_for_status(response, model_id)
        return response.json()

    async def pull_model(self, model_id: str) -> None:
        async with self._translate_errors():
            response = await self._client.post(
                f"{self.base_url}/api/pull",
                json={"model": model_id, "stream": False},
            )
        _raise_for_status(response, model_id)
        logger.debug("ollama_model_pulled", model_id=model_id)

    async def load_model(self, model_id: str, options: dict | None = None) -> None:
        # An empty prompt makes Ollama load the model without generating anything
        payload: dict = {"model": model_id, "prompt": "", "stream": False}
        if options:
            payload["options"] = options
        async with self._translate_errors():
            response = await self._client.post(f"{self.base_url}/api/generate", json=payload)
        _raise_for_status(response, model_id)

    async def unload_model(self, model_id: str) -> None:
        async with self._translate_errors():
            response = await self._client.post(
                f"{self.base_url}/api/generate",
                json={"model": model_id, "prompt": "", "keep_alive": 0, "stream": False},
            )
        _raise_for_status(response, model_id)

    async def generate(self, payload: dict) -> dict:
        body = {**payload, "stream": False}
        async with self._translate_errors():
            response = await self._client.post(f"{self.base_url}/api/generate", json=body)
        _raise_for_status(response, payload.get("model"))
        return response.json()

    async def generate_stream(self, payload: dict) -> AsyncIterator[dict]:
        """Stream /api/generate NDJSON chunks as dicts, preserving host order."""
        body = {**payload, "stream": True}
        async with self._translate_errors():
            async with self._client.stream("POST", f"{self.base_url}/api/generate", json=body) as response:
                if response.status_code >= 400:
                    await response.aread()
                    _raise_for_status(response, payload.get("model"))
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except ValueError as e:
                        raise HostError(f"malformed stream chunk: {line[:80]}") from e
                    if chunk.get("error"):
                        raise HostError(str(chunk["error"]))
                    yield chunk

    async def health_check(self) -> bool:
        """Ollama answers 200 at its root when it is up."""
        try:
            response = await self._client.get(f"{self.base_url}/")
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False

    async def close(self):
        """Close the underlying HTTP client."""
        await self._client.aclose()
