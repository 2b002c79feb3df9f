from enum import Enum

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class GenerativeErrorCode(str, Enum):
    INITIALIZATION_FAILED = "INITIALIZATION_FAILED"
    GENERATION_FAILED = "GENERATION_FAILED"
    INVALID_MODEL = "INVALID_MODEL"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    STREAM_ERROR = "STREAM_ERROR"


_HTTP_STATUS = {
    GenerativeErrorCode.INITIALIZATION_FAILED: 500,
    GenerativeErrorCode.GENERATION_FAILED: 502,
    GenerativeErrorCode.INVALID_MODEL: 404,
    GenerativeErrorCode.RATE_LIMIT_EXCEEDED: 429,
    GenerativeErrorCode.VALIDATION_FAILED: 422,
    GenerativeErrorCode.NETWORK_ERROR: 503,
    GenerativeErrorCode.STREAM_ERROR: 502,
}


class GenerativeError(Exception):
    """Single structured error raised by every client operation.

    ``cause`` holds the underlying exception (if any) and ``context`` carries
    diagnostic fields such as the model id, prompt or attempt count.
    """

    def __init__(
        self,
        message: str,
        code: GenerativeErrorCode,
        cause: BaseException | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.code = code
        self.cause = cause
        self.context = context or {}
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def status(self) -> int:
        return _HTTP_STATUS.get(self.code, 500)

    def to_dict(self) -> dict:
        result = {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "status": self.status,
            }
        }
        if self.context:
            result["error"]["context"] = self.context
        if self.cause is not None:
            result["error"]["cause"] = str(self.cause)
        return result


async def generative_error_handler(request: Request, exc: GenerativeError) -> JSONResponse:
    """Global exception handler for GenerativeError."""
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies in the same envelope as GenerativeError."""
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")} for e in exc.errors()]
    error = GenerativeError(
        "Request validation failed",
        GenerativeErrorCode.VALIDATION_FAILED,
        context={"errors": errors},
    )
    return JSONResponse(status_code=error.status, content=error.to_dict())
