"""
API Exception Handlers: Domain Error → HTTP Error Mapping

Centralized exception handling for clean error responses.
Maps domain-specific exceptions to appropriate HTTP status codes.
"""

from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from core.exceptions import (
    CircuitOpenError,
    ContentAutomationException,
    GenerationError,
    InvalidRequestError,
)


def _error_body(request: Request, error: str, detail, exc=None) -> dict:
    body = {
        "error": error,
        "detail": detail,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": getattr(request.state, "request_id", None),
    }
    if isinstance(exc, ContentAutomationException):
        body["error_code"] = exc.error_code
        body["category"] = exc.category.value
    return body


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(request, "Validation Error", jsonable_encoder(exc.errors())),
    )


async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    """Handle requests rejected before any provider call."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(request, "Invalid Request", exc.message, exc),
    )


async def circuit_open_handler(request: Request, exc: CircuitOpenError):
    """Handle calls rejected by an open circuit breaker."""
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(int(exc.retry_after) + 1)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(request, "Provider Unavailable", exc.message, exc),
        headers=headers,
    )


async def generation_error_handler(request: Request, exc: GenerationError):
    """Handle exhausted generation attempts."""
    if isinstance(exc.last_error, CircuitOpenError):
        return await circuit_open_handler(request, exc.last_error)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=_error_body(
            request,
            "Generation Failed",
            {"message": exc.message, "attempts": exc.attempts},
            exc,
        ),
    )


async def domain_error_handler(request: Request, exc: ContentAutomationException):
    """Fallback for any other domain error."""
    logger.error(f"Unhandled domain error | error={exc.to_dict()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "Internal Error", exc.message, exc),
    )


def add_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(InvalidRequestError, invalid_request_handler)
    app.add_exception_handler(CircuitOpenError, circuit_open_handler)
    app.add_exception_handler(GenerationError, generation_error_handler)
    app.add_exception_handler(ContentAutomationException, domain_error_handler)
