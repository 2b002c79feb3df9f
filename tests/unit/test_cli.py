import httpx
import pytest
from httpx import ASGITransport
from typer.testing import CliRunner

from generative import cli
from generative.client import ClientOptions, GenerativeClient
from generative.services.host.ollama_client import OllamaHost
from tests.mocks import fake_ollama

runner = CliRunner()


@pytest.fixture(autouse=True)
def fake_client(monkeypatch):
    """Point every CLI command at the in-process fake Ollama."""

    def _make_client(host):
        http_client = httpx.AsyncClient(transport=ASGITransport(app=fake_ollama.app), base_url="http://fake-ollama")
        options = ClientOptions(host="http://fake-ollama", max_retries=0, base_retry_delay_ms=0, templates_path=None)
        return GenerativeClient(options, model_host=OllamaHost("http://fake-ollama", http_client=http_client))

    monkeypatch.setattr(cli, "_make_client", _make_client)


def test_models():
    result = runner.invoke(cli.cli_app, ["models"])
    assert result.exit_code == 0
    assert "codellama:latest" in result.output


def test_status_of_missing_model():
    result = runner.invoke(cli.cli_app, ["status", "mistral"])
    assert result.exit_code == 0
    assert "error" in result.output


def test_preload_with_template(ollama_state):
    result = runner.invoke(cli.cli_app, ["preload", "llama2", "--template", "low-memory"])
    assert result.exit_code == 0
    assert "Model llama2 loaded." in result.output
    assert "llama2:latest" in ollama_state.running


def test_preload_with_unknown_template_fails(ollama_state):
    result = runner.invoke(cli.cli_app, ["preload", "llama2", "--template", "nope"])
    assert result.exit_code == 1
    assert "VALIDATION_FAILED" in result.output
    assert ollama_state.running == set()


def test_generate_without_streaming():
    result = runner.invoke(cli.cli_app, ["generate", "Hi", "--no-stream"])
    assert result.exit_code == 0
    assert "Hello world" in result.output


def test_generate_streaming():
    result = runner.invoke(cli.cli_app, ["generate", "Hi"])
    assert result.exit_code == 0
    assert "Hello world" in result.output
    assert "3 tokens" in result.output


def test_generate_rate_limited(ollama_state):
    ollama_state.generate_failures.append((429, "slow down"))
    result = runner.invoke(cli.cli_app, ["generate", "Hi", "--no-stream"])
    assert result.exit_code == 1
    assert "RATE_LIMIT_EXCEEDED" in result.output


def test_generate_template_dry_run(ollama_state):
    result = runner.invoke(
        cli.cli_app,
        ["generate-template", "code-review", "--var", "language=Rust", "--var", "code=fn main() { println!(); }", "--dry-run"],
    )
    assert result.exit_code == 0
    assert '"model": "codellama"' in result.output
    assert '"config_template": "gpu-optimized"' in result.output
    assert ollama_state.calls == []


def test_generate_template_bad_var_syntax():
    result = runner.invoke(cli.cli_app, ["generate-template", "code-review", "--var", "language"])
    assert result.exit_code != 0


def test_templates_for_model():
    result = runner.invoke(cli.cli_app, ["templates", "--model", "llama2"])
    assert result.exit_code == 0
    assert "low-memory" in result.output
    assert "code-review" in result.output
