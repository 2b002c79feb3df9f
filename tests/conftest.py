import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from generative.client import ClientOptions, GenerativeClient
from generative.services.host.ollama_client import OllamaHost
from tests.mocks import fake_ollama
from tests.mocks.recording_logger import RecordingLogger


@pytest.fixture(autouse=True)
def ollama_state():
    """Fresh fake Ollama state for every test."""
    fake_ollama.state.reset()
    yield fake_ollama.state


@pytest.fixture
def recording_logger():
    return RecordingLogger()


@pytest_asyncio.fixture
async def ollama_host():
    """OllamaHost talking to the fake Ollama app in-process."""
    transport = ASGITransport(app=fake_ollama.app)
    http_client = httpx.AsyncClient(transport=transport, base_url="http://fake-ollama")
    host = OllamaHost(base_url="http://fake-ollama", http_client=http_client)
    yield host
    await http_client.aclose()


@pytest_asyncio.fixture
async def client(ollama_host, recording_logger):
    """GenerativeClient wired to the fake Ollama host, with no retry delay."""
    options = ClientOptions(
        host="http://fake-ollama",
        max_retries=2,
        base_retry_delay_ms=0,
        templates_path=None,
        logger=recording_logger,
    )
    return GenerativeClient(options, model_host=ollama_host)


@pytest_asyncio.fixture
async def api_client(client):
    """HTTP client for the API app with the fake-backed GenerativeClient on app state."""
    from generative.main import app

    app.state.client = client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.state.client = None
