import asyncio
import json

import typer
from rich.console import Console
from rich.table import Table

from generative.client import ClientOptions, GenerativeClient
from generative.config import settings
from generative.core.exceptions import GenerativeError
from generative.core.logging import configure_logging
from generative.schemas.generate import GenerateOverrides, GenerateRequest
from generative.services.engine import StreamHandler

console = Console()
cli_app = typer.Typer(name="generative", help="Manage Ollama models and run generations")


def _run_async(coro):
    """Run async code from sync CLI context."""
    return asyncio.run(coro)


def _make_client(host: str | None) -> GenerativeClient:
    options = ClientOptions()
    if host:
        options.host = host
    return GenerativeClient(options)


async def _with_client(host: str | None, fn):
    async with _make_client(host) as client:
        return await fn(client)


def _fail(error: GenerativeError) -> None:
    console.print(f"[bold red]{error.code.value}[/bold red]: {error.message}")
    if error.cause is not None:
        console.print(f"  [dim]cause: {error.cause}[/dim]")
    raise typer.Exit(code=1)


def _parse_vars(pairs: list[str]) -> dict[str, str]:
    variables = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected NAME=VALUE, got '{pair}'", param_hint="--var")
        variables[name] = value
    return variables


_host_option = typer.Option(None, "--host", help="Ollama host URL (defaults to OLLAMA_HOST)")


@cli_app.callback()
def main_callback(log_level: str = typer.Option(None, "--log-level", help="debug, info, warning, error")):
    configure_logging(log_level or settings.generative_log_level)


@cli_app.command("models")
def list_models(host: str = _host_option):
    """List models known to the host."""
    try:
        models = _run_async(_with_client(host, lambda c: c.list_models()))
    except GenerativeError as e:
        _fail(e)

    if not models:
        console.print("[dim]No models found.[/dim]")
        return

    table = Table(title="Models")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Context", justify="right")
    table.add_column("Streaming")
    for model in models:
        table.add_row(
            model.id,
            model.name,
            str(model.capabilities.max_context_length),
            "yes" if model.capabilities.streaming else "no",
        )
    console.print(table)


@cli_app.command("status")
def model_status(model_id: str = typer.Argument(help="Model identifier"), host: str = _host_option):
    """Ask the host for a model's status."""
    try:
        status = _run_async(_with_client(host, lambda c: c.get_model_status(model_id)))
    except GenerativeError as e:
        _fail(e)

    color = {"ready": "green", "loading": "yellow", "error": "red"}[status.status]
    console.print(f"{model_id}: [{color}]{status.status}[/{color}] (loaded: {status.loaded})")
    if status.error:
        console.print(f"  [dim]{status.error}[/dim]")


@cli_app.command("preload")
def preload(
    model_id: str = typer.Argument(help="Model identifier"),
    template: str = typer.Option(None, "--template", help="Config template to apply first"),
    host: str = _host_option,
):
    """Load a model, optionally applying a config template."""

    async def _preload(client: GenerativeClient):
        if template:
            await client.apply_config_template(model_id, template)
        await client.preload_model(model_id)

    try:
        _run_async(_with_client(host, _preload))
    except GenerativeError as e:
        _fail(e)
    console.print(f"[bold green]Model {model_id} loaded.[/bold green]")


@cli_app.command("unload")
def unload(model_id: str = typer.Argument(help="Model identifier"), host: str = _host_option):
    """Unload a model from memory."""
    try:
        _run_async(_with_client(host, lambda c: c.unload_model(model_id)))
    except GenerativeError as e:
        _fail(e)
    console.print(f"Model {model_id} unloaded.")


@cli_app.command("templates")
def list_templates(
    model_id: str = typer.Option(None, "--model", help="Only config templates compatible with this model"),
):
    """List config and prompt templates."""

    async def _list(client: GenerativeClient):
        if model_id:
            config_templates = await client.compatible_config_templates(model_id)
        else:
            config_templates = await client.list_config_templates()
        return config_templates, await client.list_prompt_templates()

    config_templates, prompt_templates = _run_async(_with_client(None, _list))

    table = Table(title="Config Templates")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Patterns")
    for t in config_templates:
        table.add_row(t.id, t.name, ", ".join(t.model_patterns))
    console.print(table)

    table = Table(title="Prompt Templates")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Variables")
    for t in prompt_templates:
        names = [f"{v.name}*" if v.required else v.name for v in t.variables]
        table.add_row(t.id, t.name, ", ".join(names))
    console.print(table)


def _console_stream_handler() -> StreamHandler:
    def on_token(token: str) -> None:
        console.print(token, end="", soft_wrap=True, highlight=False, markup=False)

    def on_complete(result) -> None:
        console.print()
        console.print(f"[dim]{result.eval_count} tokens[/dim]")

    def on_error(error: Exception) -> None:
        console.print(f"\n[yellow]stream interrupted: {error}[/yellow]")

    return StreamHandler(on_token=on_token, on_complete=on_complete, on_error=on_error)


@cli_app.command("generate")
def generate(
    prompt: str = typer.Argument(help="Prompt text"),
    model: str = typer.Option(None, "--model", "-m", help="Model identifier"),
    system: str = typer.Option(None, "--system", help="System prompt"),
    temperature: float = typer.Option(0.7, "--temperature"),
    top_p: float = typer.Option(0.9, "--top-p"),
    stream: bool = typer.Option(True, "--stream/--no-stream"),
    host: str = _host_option,
):
    """Generate text from a prompt."""
    request = {
        "model": model,
        "prompt": prompt,
        "system": system,
        "temperature": temperature,
        "top_p": top_p,
        "stream": stream,
    }
    handler = _console_stream_handler() if stream else None
    try:
        text = _run_async(_with_client(host, lambda c: c.generate(request, handler)))
    except GenerativeError as e:
        _fail(e)
    if not stream:
        console.print(text, highlight=False, markup=False)


@cli_app.command("generate-template")
def generate_template(
    template_id: str = typer.Argument(help="Prompt template id"),
    var: list[str] = typer.Option([], "--var", "-v", help="Template variable as NAME=VALUE (repeatable)"),
    model: str = typer.Option(None, "--model", "-m", help="Override the template's model"),
    stream: bool = typer.Option(True, "--stream/--no-stream"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the resolved request without generating"),
    host: str = _host_option,
):
    """Generate from a prompt template."""
    variables = _parse_vars(var)
    overrides = GenerateOverrides(model=model, stream=stream)

    if dry_run:
        try:
            request, config_template = _run_async(
                _with_client(host, lambda c: c.resolve_template(template_id, variables, overrides))
            )
        except GenerativeError as e:
            _fail(e)
        _print_request(request, config_template)
        return

    handler = _console_stream_handler() if stream else None
    try:
        text = _run_async(
            _with_client(host, lambda c: c.generate_from_template(template_id, variables, overrides, handler))
        )
    except GenerativeError as e:
        _fail(e)
    if not stream:
        console.print(text, highlight=False, markup=False)


def _print_request(request: GenerateRequest, config_template: str | None) -> None:
    data = request.model_dump()
    data["config_template"] = config_template
    console.print_json(json.dumps(data))


@cli_app.command("serve")
def serve(
    bind: str = typer.Option("127.0.0.1", "--bind", help="Address to listen on"),
    port: int = typer.Option(8080, "--port"),
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("generative.main:app", host=bind, port=port)


def main():
    cli_app()


if __name__ == "__main__":
    main()
