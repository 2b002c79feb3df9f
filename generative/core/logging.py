"""Structured logging for the generative client.

``GenerativeLogger`` is the narrow interface the client talks to. The default
implementation forwards everything to structlog; callers can plug in their own
(for example to ship generation metrics somewhere else).
"""

from typing import Literal, Protocol

import structlog

_NAME_TO_LEVEL = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "warn": 30,
    "error": 40,
    "critical": 50,
}

ModelEvent = Literal["load", "unload", "configure"]
TemplateType = Literal["config", "prompt"]


def configure_logging(level: str = "info") -> None:
    """Configure structlog with JSON output filtered at ``level``."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_NAME_TO_LEVEL.get(level.lower(), 20)),
    )


class GenerativeLogger(Protocol):
    def debug(self, message: str, **context) -> None: ...

    def info(self, message: str, **context) -> None: ...

    def warn(self, message: str, **context) -> None: ...

    def error(self, message: str, error: BaseException | None = None, **context) -> None: ...

    def log_performance(self, operation: str, duration_ms: float, **context) -> None: ...

    def log_resource_usage(self, resource: str, usage: int, **context) -> None: ...

    def log_model_event(self, event: ModelEvent, model_id: str, **context) -> None: ...

    def log_template_usage(self, template_id: str, template_type: TemplateType, **context) -> None: ...

    def log_generation_metrics(
        self,
        model_id: str,
        prompt_tokens: int,
        total_tokens: int,
        duration_ms: float,
        tokens_per_second: float,
        **context,
    ) -> None: ...


def format_bytes(size: float) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.2f} {units[unit_index]}"


class StructlogLogger:
    """Default GenerativeLogger backed by structlog."""

    def __init__(self, logger=None):
        self._logger = logger or structlog.get_logger("generative")

    def debug(self, message: str, **context) -> None:
        self._logger.debug(message, **context)

    def info(self, message: str, **context) -> None:
        self._logger.info(message, **context)

    def warn(self, message: str, **context) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, error: BaseException | None = None, **context) -> None:
        if error is not None:
            context["error"] = str(error)
            code = getattr(error, "code", None)
            if code is not None:
                context["error_code"] = getattr(code, "value", code)
        self._logger.error(message, **context)

    def log_performance(self, operation: str, duration_ms: float, **context) -> None:
        self._logger.info("performance", operation=operation, duration_ms=round(duration_ms, 2), **context)

    def log_resource_usage(self, resource: str, usage: int, **context) -> None:
        self._logger.info("resource_usage", resource=resource, usage=usage, usage_human=format_bytes(usage), **context)

    def log_model_event(self, event: ModelEvent, model_id: str, **context) -> None:
        self._logger.info("model_event", event_type=event, model_id=model_id, **context)

    def log_template_usage(self, template_id: str, template_type: TemplateType, **context) -> None:
        self._logger.info("template_usage", template_id=template_id, template_type=template_type, **context)

    def log_generation_metrics(
        self,
        model_id: str,
        prompt_tokens: int,
        total_tokens: int,
        duration_ms: float,
        tokens_per_second: float,
        **context,
    ) -> None:
        self._logger.info(
            "generation_metrics",
            model_id=model_id,
            prompt_tokens=prompt_tokens,
            total_tokens=total_tokens,
            duration_ms=round(duration_ms, 2),
            tokens_per_second=round(tokens_per_second, 2),
            **context,
        )


class SafeLogger:
    """Wraps a GenerativeLogger so a failing logger never breaks the caller."""

    def __init__(self, inner: GenerativeLogger):
        self._inner = inner
        self._fallback = structlog.get_logger("generative.logger")

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)

        def _call(*args, **kwargs):
            try:
                getattr(self._inner, name)(*args, **kwargs)
            except Exception as exc:
                self._fallback.debug("logger_call_failed", method=name, reason=str(exc))

        return _call
