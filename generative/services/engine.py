"""Generation engine: executes one generate request with retry, backoff and streaming.

Per call the engine moves through ``validating → checking-model →
attempting(k) → success | retry-wait → attempting(k+1) | failed``. Every
failure that leaves the engine is a classified ``GenerativeError``.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel

from generative.core.exceptions import GenerativeError, GenerativeErrorCode
from generative.core.logging import GenerativeLogger
from generative.schemas.generate import GenerateRequest, GenerationResult
from generative.services.host.base import ModelHost
from generative.services.lifecycle import ModelLifecycleManager
from generative.services.registry import ModelRegistry

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."

RETRYABLE_PHRASES = ("rate limit", "network", "timeout")


@dataclass
class StreamHandler:
    """Callbacks for streaming generation. Each may be sync or async."""

    on_token: Callable[[str], Awaitable[None] | None] | None = None
    on_complete: Callable[[GenerationResult], Awaitable[None] | None] | None = None
    on_error: Callable[[Exception], Awaitable[None] | None] | None = None


async def _invoke(callback, *args) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def is_retryable(error: BaseException) -> bool:
    message = str(error).lower()
    return any(phrase in message for phrase in RETRYABLE_PHRASES)


def backoff_delay(base_delay_ms: int, attempt: int) -> float:
    """Seconds to wait before the attempt after ``attempt`` (0-based)."""
    return base_delay_ms * 2**attempt / 1000


def classify_failure(
    error: BaseException,
    request: GenerateRequest,
    attempts: int,
) -> GenerativeError:
    """Turn the last attempt's failure into a GenerativeError, checked in priority order."""
    message = str(error).lower()
    context = {"prompt": request.prompt, "model": request.model, "attempts": attempts}

    if "rate limit" in message:
        return GenerativeError("Rate limit exceeded", GenerativeErrorCode.RATE_LIMIT_EXCEEDED, error, context)
    if "model not found" in message:
        return GenerativeError("Invalid model specified", GenerativeErrorCode.INVALID_MODEL, error, context)
    if "network" in message or "timeout" in message:
        return GenerativeError("Network error occurred", GenerativeErrorCode.NETWORK_ERROR, error, context)
    if request.stream:
        return GenerativeError("Streaming error occurred", GenerativeErrorCode.STREAM_ERROR, error, context)
    return GenerativeError("Failed to generate content", GenerativeErrorCode.GENERATION_FAILED, error, context)


class GenerationEngine:
    def __init__(
        self,
        host: ModelHost,
        registry: ModelRegistry,
        lifecycle: ModelLifecycleManager,
        logger: GenerativeLogger,
        max_retries: int = 3,
        base_retry_delay_ms: int = 1000,
        default_model: str = "llama2",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._host = host
        self._registry = registry
        self._lifecycle = lifecycle
        self._logger = logger
        self.max_retries = max_retries
        self.base_retry_delay_ms = base_retry_delay_ms
        self.default_model = default_model
        self._sleep = sleep

    async def generate(
        self,
        options: GenerateRequest | dict,
        stream_handler: StreamHandler | None = None,
    ) -> str:
        start = time.monotonic()
        try:
            request = self._validate(options)
            await self._check_model(request.model)
            return await self._run_attempts(request, stream_handler, start)
        except GenerativeError:
            raise
        except Exception as e:
            error = GenerativeError(
                "Validation failed",
                GenerativeErrorCode.VALIDATION_FAILED,
                cause=e,
                context={"options": _options_context(options)},
            )
            self._logger.error("generation_validation_failed", error)
            raise error from e

    def _validate(self, options: GenerateRequest | dict) -> GenerateRequest:
        data = options.model_dump() if isinstance(options, BaseModel) else dict(options)
        request = GenerateRequest.model_validate(data)
        if not request.model:
            request.model = self.default_model
        return request

    async def _check_model(self, model_id: str) -> None:
        if await self._lifecycle.get_model(model_id) is None:
            raise GenerativeError(
                f"Model '{model_id}' not found",
                GenerativeErrorCode.INVALID_MODEL,
                context={"model": model_id},
            )
        status = await self._lifecycle.get_model_status(model_id)
        if status.status == "error":
            raise GenerativeError(
                f"Model '{model_id}' is in error state: {status.error}",
                GenerativeErrorCode.INVALID_MODEL,
                context={"model": model_id, "error": status.error},
            )

    async def _run_attempts(
        self,
        request: GenerateRequest,
        stream_handler: StreamHandler | None,
        start: float,
    ) -> str:
        self._logger.debug(
            "generation_starting",
            model=request.model,
            temperature=request.temperature,
            top_p=request.top_p,
            stream=request.stream,
        )

        payload = _build_payload(request)
        last_error: Exception | None = None
        attempts = 0

        for attempt in range(self.max_retries + 1):
            attempts = attempt + 1
            if attempt > 0:
                self._logger.info("generation_retrying", attempt=attempt, model=request.model)
            try:
                if request.stream and stream_handler is not None:
                    result = await self._stream_attempt(payload, stream_handler)
                else:
                    result = GenerationResult.model_validate(await self._host.generate(payload))
            except Exception as e:
                last_error = e
                if not is_retryable(e) or attempt == self.max_retries:
                    break
                delay = backoff_delay(self.base_retry_delay_ms, attempt)
                self._logger.warn(
                    "generation_retry_scheduled",
                    attempt=attempt,
                    delay_ms=delay * 1000,
                    error=str(e),
                )
                await self._sleep(delay)
            else:
                await self._record_success(request, result, start)
                return result.response

        error = classify_failure(last_error, request, attempts)
        self._logger.error(
            "generation_failed",
            error,
            model=request.model,
            duration_ms=(time.monotonic() - start) * 1000,
        )
        raise error from last_error

    async def _stream_attempt(self, payload: dict, handler: StreamHandler) -> GenerationResult:
        response = ""
        metrics: dict = {}
        try:
            async for chunk in self._host.generate_stream(payload):
                token = chunk.get("response", "")
                if handler.on_token is not None:
                    await _invoke(handler.on_token, token)
                response += token
                # Later chunks carry the cumulative counters; keep the latest values
                metrics.update({k: v for k, v in chunk.items() if k != "response"})

            result = GenerationResult.model_validate({**metrics, "response": response})
            self._logger.info(
                "generation_stream_completed",
                model=payload["model"],
                prompt_tokens=result.prompt_eval_count,
                total_tokens=result.eval_count,
            )
            if handler.on_complete is not None:
                await _invoke(handler.on_complete, result)
            return result
        except Exception as e:
            if handler.on_error is not None:
                await _invoke(handler.on_error, e)
            raise

    async def _record_success(self, request: GenerateRequest, result: GenerationResult, start: float) -> None:
        duration_ms = (time.monotonic() - start) * 1000
        total_tokens = result.prompt_eval_count + result.eval_count
        if result.eval_duration:
            tokens_per_second = result.eval_count / (result.eval_duration / 1e9)
        else:
            tokens_per_second = result.eval_count / (duration_ms / 1000) if duration_ms else 0.0

        self._logger.info(
            "generation_succeeded",
            model=request.model,
            duration_ms=duration_ms,
            prompt_tokens=result.prompt_eval_count,
            total_tokens=result.eval_count,
        )
        self._logger.log_generation_metrics(
            request.model,
            prompt_tokens=result.prompt_eval_count,
            total_tokens=total_tokens,
            duration_ms=duration_ms,
            tokens_per_second=tokens_per_second,
        )
        self._logger.log_performance("generate", duration_ms, model=request.model, stream=request.stream)
        await self._registry.update_status(request.model, last_used=datetime.now(timezone.utc))


def _build_payload(request: GenerateRequest) -> dict:
    return {
        "model": request.model,
        "prompt": request.prompt,
        "system": request.system or DEFAULT_SYSTEM_PROMPT,
        "context": request.context,
        "options": {"temperature": request.temperature, "top_p": request.top_p},
    }


def _options_context(options) -> dict:
    if isinstance(options, BaseModel):
        return options.model_dump(exclude_none=True)
    if isinstance(options, dict):
        return dict(options)
    return {"value": repr(options)}
