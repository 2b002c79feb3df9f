import pytest

from generative.core.exceptions import GenerativeError, GenerativeErrorCode
from generative.schemas.generate import GenerateRequest
from generative.services.engine import (
    DEFAULT_SYSTEM_PROMPT,
    GenerationEngine,
    StreamHandler,
    backoff_delay,
    classify_failure,
    is_retryable,
)
from generative.services.host.base import HostError
from generative.services.lifecycle import ModelLifecycleManager
from generative.services.registry import ModelRegistry, default_model_config
from generative.services.template_store import ConfigTemplateStore
from tests.mocks.recording_logger import RecordingLogger
from tests.mocks.scripted_host import ScriptedHost


class _Sleeper:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _make_engine(host: ScriptedHost, max_retries: int = 2, base_delay_ms: int = 100):
    registry = ModelRegistry()
    logger = RecordingLogger()
    lifecycle = ModelLifecycleManager(host, registry, ConfigTemplateStore(), logger)
    sleeper = _Sleeper()
    engine = GenerationEngine(
        host=host,
        registry=registry,
        lifecycle=lifecycle,
        logger=logger,
        max_retries=max_retries,
        base_retry_delay_ms=base_delay_ms,
        sleep=sleeper,
    )
    return engine, sleeper, registry, logger


def _stream_chunks(*tokens: str) -> list[dict]:
    chunks = [{"response": t, "done": False, "eval_count": i + 1} for i, t in enumerate(tokens)]
    chunks[-1].update({"done": True, "prompt_eval_count": 5, "eval_duration": 1_000_000})
    return chunks


# ── Synchronous generation ───────────────────────────────────────────────────


async def test_sync_generation_returns_response():
    host = ScriptedHost(["Hello there"])
    engine, sleeper, _, _ = _make_engine(host)

    result = await engine.generate({"model": "llama2", "prompt": "Hi"})

    assert result == "Hello there"
    assert sleeper.delays == []
    payload = host.generate_payloads[0]
    assert payload["system"] == DEFAULT_SYSTEM_PROMPT
    assert payload["options"] == {"temperature": 0.7, "top_p": 0.9}
    assert payload["context"] == []


async def test_explicit_parameters_reach_the_host():
    host = ScriptedHost(["ok"])
    engine, _, _, _ = _make_engine(host)

    await engine.generate(GenerateRequest(
        model="llama2", prompt="Hi", system="Be terse.", temperature=0.2, top_p=0.5, context=[7, 8]
    ))

    payload = host.generate_payloads[0]
    assert payload["system"] == "Be terse."
    assert payload["options"] == {"temperature": 0.2, "top_p": 0.5}
    assert payload["context"] == [7, 8]


async def test_missing_model_uses_default():
    host = ScriptedHost(["ok"])
    engine, _, _, _ = _make_engine(host)

    await engine.generate({"prompt": "Hi"})

    assert host.generate_payloads[0]["model"] == "llama2"


async def test_success_refreshes_last_used():
    host = ScriptedHost(["ok"])
    engine, _, registry, _ = _make_engine(host)

    await engine.generate({"model": "llama2", "prompt": "Hi"})

    assert registry.get_status("llama2").last_used is not None


async def test_success_logs_generation_metrics():
    host = ScriptedHost(["ok"])
    engine, _, _, logger = _make_engine(host)

    await engine.generate({"model": "llama2", "prompt": "Hi"})

    (args, kwargs), = logger.calls("log_generation_metrics")
    assert args == ("llama2",)
    assert kwargs["prompt_tokens"] == 4
    assert kwargs["total_tokens"] == 6


# ── Retry and backoff ────────────────────────────────────────────────────────


async def test_backoff_doubles_between_attempts():
    host = ScriptedHost([HostError("network error: reset"), HostError("request timeout"), "recovered"])
    engine, sleeper, _, _ = _make_engine(host, max_retries=2, base_delay_ms=100)

    result = await engine.generate({"model": "llama2", "prompt": "Hi"})

    assert result == "recovered"
    assert sleeper.delays == [0.1, 0.2]
    assert len(host.generate_payloads) == 3


async def test_no_wait_after_final_failed_attempt():
    host = ScriptedHost([HostError("network error")] * 3)
    engine, sleeper, _, _ = _make_engine(host, max_retries=2, base_delay_ms=100)

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "llama2", "prompt": "Hi"})

    assert exc_info.value.code == GenerativeErrorCode.NETWORK_ERROR
    assert sleeper.delays == [0.1, 0.2]
    assert len(host.generate_payloads) == 3
    assert exc_info.value.context["attempts"] == 3


async def test_non_retryable_error_stops_immediately():
    host = ScriptedHost([HostError("host returned 500: out of memory"), "never reached"])
    engine, sleeper, _, _ = _make_engine(host, max_retries=3)

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "llama2", "prompt": "Hi"})

    assert exc_info.value.code == GenerativeErrorCode.GENERATION_FAILED
    assert len(host.generate_payloads) == 1
    assert sleeper.delays == []


async def test_zero_retries_means_single_attempt():
    host = ScriptedHost([HostError("rate limit exceeded")])
    engine, sleeper, _, _ = _make_engine(host, max_retries=0)

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "llama2", "prompt": "Hi"})

    assert exc_info.value.code == GenerativeErrorCode.RATE_LIMIT_EXCEEDED
    assert sleeper.delays == []


# ── Error classification ─────────────────────────────────────────────────────


async def test_rate_limit_is_classified_after_retries():
    host = ScriptedHost([HostError("rate limit exceeded: slow down")] * 3)
    engine, _, _, _ = _make_engine(host)

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "llama2", "prompt": "Hi"})

    err = exc_info.value
    assert err.code == GenerativeErrorCode.RATE_LIMIT_EXCEEDED
    assert isinstance(err.cause, HostError)
    assert err.context["prompt"] == "Hi"
    assert err.context["model"] == "llama2"


async def test_model_not_found_during_generation():
    host = ScriptedHost([HostError("model not found: llama2", status_code=404)])
    engine, _, _, _ = _make_engine(host)

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "llama2", "prompt": "Hi"})

    assert exc_info.value.code == GenerativeErrorCode.INVALID_MODEL
    assert len(host.generate_payloads) == 1


async def test_streaming_failure_without_known_phrase_is_stream_error():
    host = ScriptedHost([[{"response": "Hel"}, HostError("connection dropped mid-stream")]])
    engine, _, _, _ = _make_engine(host)

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "llama2", "prompt": "Hi", "stream": True}, StreamHandler())

    assert exc_info.value.code == GenerativeErrorCode.STREAM_ERROR


class TestClassifyFailure:
    def _request(self, stream: bool = False) -> GenerateRequest:
        return GenerateRequest(model="llama2", prompt="Hi", stream=stream)

    def test_rate_limit_wins_over_network(self):
        err = classify_failure(Exception("rate limit hit on network"), self._request(), 1)
        assert err.code == GenerativeErrorCode.RATE_LIMIT_EXCEEDED

    def test_model_not_found_wins_over_timeout(self):
        err = classify_failure(Exception("model not found after timeout"), self._request(), 1)
        assert err.code == GenerativeErrorCode.INVALID_MODEL

    def test_network_wins_over_stream(self):
        err = classify_failure(Exception("network unreachable"), self._request(stream=True), 1)
        assert err.code == GenerativeErrorCode.NETWORK_ERROR

    def test_generic_failure(self):
        err = classify_failure(Exception("boom"), self._request(), 1)
        assert err.code == GenerativeErrorCode.GENERATION_FAILED


class TestRetryHelpers:
    def test_retryable_phrases(self):
        assert is_retryable(Exception("Rate limit exceeded"))
        assert is_retryable(Exception("network error"))
        assert is_retryable(Exception("request timeout"))
        assert not is_retryable(Exception("model not found: x"))

    def test_backoff_delay(self):
        assert backoff_delay(100, 0) == 0.1
        assert backoff_delay(100, 1) == 0.2
        assert backoff_delay(1000, 3) == 8.0


# ── Streaming ────────────────────────────────────────────────────────────────


async def test_streaming_accumulates_tokens_in_order():
    host = ScriptedHost([_stream_chunks("Hel", "lo", " world")])
    engine, _, _, _ = _make_engine(host)
    tokens, completed = [], []

    handler = StreamHandler(on_token=tokens.append, on_complete=completed.append)
    result = await engine.generate({"model": "llama2", "prompt": "Hi", "stream": True}, handler)

    assert result == "Hello world"
    assert tokens == ["Hel", "lo", " world"]
    assert len(completed) == 1
    assert completed[0].response == "Hello world"
    assert completed[0].eval_count == 3
    assert completed[0].prompt_eval_count == 5
    assert completed[0].done is True


async def test_streaming_supports_async_callbacks():
    host = ScriptedHost([_stream_chunks("a", "b")])
    engine, _, _, _ = _make_engine(host)
    tokens = []

    async def on_token(token: str) -> None:
        tokens.append(token)

    result = await engine.generate(
        {"model": "llama2", "prompt": "Hi", "stream": True}, StreamHandler(on_token=on_token)
    )

    assert result == "ab"
    assert tokens == ["a", "b"]


async def test_stream_failure_calls_on_error_then_retries():
    host = ScriptedHost([
        [{"response": "Hel"}, HostError("network error: reset")],
        _stream_chunks("Hel", "lo"),
    ])
    engine, sleeper, _, _ = _make_engine(host, base_delay_ms=50)
    tokens, errors = [], []

    handler = StreamHandler(on_token=tokens.append, on_error=errors.append)
    result = await engine.generate({"model": "llama2", "prompt": "Hi", "stream": True}, handler)

    assert result == "Hello"
    assert tokens == ["Hel", "Hel", "lo"]
    assert len(errors) == 1
    assert sleeper.delays == [0.05]


async def test_stream_flag_without_handler_uses_sync_call():
    host = ScriptedHost(["whole response"])
    engine, _, _, _ = _make_engine(host)

    result = await engine.generate({"model": "llama2", "prompt": "Hi", "stream": True})

    assert result == "whole response"


# ── Validation and model checks ──────────────────────────────────────────────


async def test_empty_prompt_fails_validation_before_any_host_call():
    host = ScriptedHost()
    engine, sleeper, _, _ = _make_engine(host)

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "llama2", "prompt": ""})

    assert exc_info.value.code == GenerativeErrorCode.VALIDATION_FAILED
    assert host.generate_payloads == []
    assert sleeper.delays == []


async def test_out_of_range_temperature_fails_validation():
    host = ScriptedHost()
    engine, _, _, _ = _make_engine(host)

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "llama2", "prompt": "Hi", "temperature": 5})

    assert exc_info.value.code == GenerativeErrorCode.VALIDATION_FAILED


async def test_unknown_model_is_invalid():
    host = ScriptedHost(models={"llama2"})
    engine, _, _, _ = _make_engine(host)

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "mistral", "prompt": "Hi"})

    assert exc_info.value.code == GenerativeErrorCode.INVALID_MODEL
    assert host.generate_payloads == []


async def test_model_in_error_state_is_invalid():
    host = ScriptedHost(models={"llama2"})
    engine, _, registry, _ = _make_engine(host)
    # Known to the registry but gone from the host
    registry.seed(default_model_config("ghost"))

    with pytest.raises(GenerativeError) as exc_info:
        await engine.generate({"model": "ghost", "prompt": "Hi"})

    err = exc_info.value
    assert err.code == GenerativeErrorCode.INVALID_MODEL
    assert "error state" in err.message
    assert "model not found" in err.message
    assert host.generate_payloads == []
