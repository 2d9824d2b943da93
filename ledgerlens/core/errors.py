"""API error taxonomy and the top-level exception handlers."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("ledgerlens.api.errors")


class ApiError(Exception):
    """Error carrying the HTTP status and message surfaced to the client."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"


class Unauthorized(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required", **kwargs: Any):
        super().__init__(message, **kwargs)


class Forbidden(ApiError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(ApiError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(ApiError):
    status_code = 409
    code = "CONFLICT"


class CredentialMissing(ApiError):
    status_code = 400
    code = "CREDENTIAL_MISSING"


class CredentialExpired(ApiError):
    status_code = 401
    code = "CREDENTIAL_EXPIRED"


class MalformedAIResponse(ApiError):
    status_code = 500
    code = "MALFORMED_AI_RESPONSE"


class IncompleteAIResponse(ApiError):
    status_code = 500
    code = "INCOMPLETE_AI_RESPONSE"


class AIRequestBlocked(ApiError):
    status_code = 400
    code = "AI_REQUEST_BLOCKED"


class AIServiceError(ApiError):
    status_code = 500
    code = "AI_SERVICE_ERROR"


class SandboxExecutionError(ApiError):
    status_code = 500
    code = "SANDBOX_EXECUTION_ERROR"


class SandboxTimeout(SandboxExecutionError):
    code = "SANDBOX_TIMEOUT"


class NeedsMoreInfo(ApiError):
    """The LLM asked for more detail; the envelope is returned verbatim."""

    status_code = 400
    code = "NEEDS_MORE_INFO"

    def __init__(self, envelope: Dict[str, Any]):
        super().__init__(str(envelope.get("description") or "More information is needed"))
        self.envelope = envelope

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.envelope)


def _request_info(request: Request) -> Dict[str, str]:
    return {"method": request.method, "path": request.url.path}


def error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert any exception into the JSON error body."""

    if isinstance(exc, ApiError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    if isinstance(exc, RequestValidationError):
        errors = exc.errors()
        logger.warning("Validation error on %s: %s", request.url.path, errors)
        return JSONResponse(
            status_code=422,
            content={
                "message": "Request validation failed",
                "code": "VALIDATION_ERROR",
                "details": {"errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in errors
                ]},
            },
        )

    if isinstance(exc, StarletteHTTPException):
        logger.warning("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail), "code": f"HTTP_{exc.status_code}"},
        )

    logger.error(
        "Unexpected error: %s: %s",
        type(exc).__name__,
        exc,
        extra=_request_info(request),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"message": "An unexpected error occurred", "code": "INTERNAL_ERROR"},
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register the error handlers with the app."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return error_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_handler(request, exc)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        return error_handler(request, exc)


__all__ = [
    "AIRequestBlocked",
    "AIServiceError",
    "ApiError",
    "Conflict",
    "CredentialExpired",
    "CredentialMissing",
    "Forbidden",
    "IncompleteAIResponse",
    "MalformedAIResponse",
    "NeedsMoreInfo",
    "NotFound",
    "SandboxExecutionError",
    "SandboxTimeout",
    "Unauthorized",
    "ValidationError",
    "error_handler",
    "setup_error_handlers",
]
