import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from generative.client import GenerativeClient
from generative.core.exceptions import GenerativeError
from generative.dependencies import get_client
from generative.schemas.generate import GenerateRequest, GenerateResponse, GenerationResult
from generative.services.engine import StreamHandler

router = APIRouter()

_DONE = object()


def _ndjson(event: dict) -> str:
    return json.dumps(event) + "\n"


async def stream_events(run: Callable[[StreamHandler], Awaitable[str]]) -> AsyncIterator[str]:
    """Bridge the engine's stream callbacks into NDJSON lines.

    Emits ``token`` events as they arrive, ``attempt_failed`` when a streaming
    attempt breaks (the engine may retry), then ``done`` or ``error``.
    """
    queue: asyncio.Queue = asyncio.Queue()

    async def on_token(token: str) -> None:
        await queue.put({"type": "token", "token": token})

    async def on_complete(result: GenerationResult) -> None:
        await queue.put({"type": "done", **result.model_dump(exclude={"context"})})

    async def on_error(error: Exception) -> None:
        await queue.put({"type": "attempt_failed", "message": str(error)})

    async def _run() -> None:
        try:
            await run(StreamHandler(on_token=on_token, on_complete=on_complete, on_error=on_error))
        except GenerativeError as e:
            await queue.put({"type": "error", **e.to_dict()})
        finally:
            await queue.put(_DONE)

    task = asyncio.create_task(_run())
    try:
        while True:
            event = await queue.get()
            if event is _DONE:
                break
            yield _ndjson(event)
    finally:
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)


@router.post("/v1/generate", response_model=None)
async def generate(
    request: GenerateRequest,
    client: GenerativeClient = Depends(get_client),
) -> GenerateResponse | StreamingResponse:
    """Generate text, either as one JSON response or as an NDJSON event stream."""
    if request.stream:
        return StreamingResponse(
            stream_events(lambda handler: client.generate(request, handler)),
            media_type="application/x-ndjson",
        )

    text = await client.generate(request)
    return GenerateResponse(model=request.model or client.engine.default_model, response=text)
