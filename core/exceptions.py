"""
Exception Hierarchy & Error Handling Framework
===============================================
Type-safe exception taxonomy with structured context propagation,
retry metadata and failure categorization.

Architecture: Railway-Oriented Programming + Error Algebra
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from core.enums import ErrorCategory, ErrorSeverity

# =============================================================================
# BASE EXCEPTION CLASSES
# =============================================================================


class ContentAutomationException(Exception):
    """
    Root exception for all application errors.

    Implements structured error context with:
    - Unique error ID for tracing
    - Severity classification for alerting
    - Structured context dictionary
    - Retry metadata and failure category
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[dict[str, Any]] = None,
        error_code: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.error_id: UUID = uuid4()
        self.message: str = message
        self.severity: ErrorSeverity = severity
        self.context: dict[str, Any] = context or {}
        self.error_code: Optional[str] = error_code
        self.retryable: bool = retryable
        self.timestamp: datetime = datetime.now(timezone.utc)

        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/telemetry."""
        return {
            "error_id": str(self.error_id),
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.name,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }

    def __str__(self) -> str:
        """Human-readable error representation."""
        parts = [f"[{self.severity.name}] {self.message}"]
        if self.error_code:
            parts.append(f"Code: {self.error_code}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


# =============================================================================
# PROVIDER EXCEPTIONS
# =============================================================================


class ProviderError(ContentAutomationException):
    """Base exception for a failed call to a generation backend."""

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
        error_code: str = "PROVIDER_ERROR",
        **kwargs,
    ):
        merged = {"provider": provider, "status_code": status_code}
        merged.update(context or {})
        super().__init__(
            message,
            retryable=True,
            context=merged,
            error_code=error_code,
            **kwargs,
        )
        self.provider = provider
        self.status_code = status_code


class ProviderHTTPError(ProviderError):
    """Backend answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: Optional[str] = None, **kwargs):
        super().__init__(
            message or f"Provider returned HTTP {status_code}",
            status_code=status_code,
            error_code="PROVIDER_HTTP_ERROR",
            **kwargs,
        )


class ProviderTimeoutError(ProviderError):
    """Backend did not answer within the per-call timeout."""

    def __init__(
        self,
        message: str = "Provider request timed out",
        *,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            context={"timeout_seconds": timeout_seconds},
            error_code="PROVIDER_TIMEOUT",
            **kwargs,
        )


class ProviderConnectionError(ProviderError):
    """Transport-level failure before any HTTP status was received."""

    def __init__(self, message: str = "Could not reach provider", **kwargs):
        super().__init__(message, error_code="PROVIDER_CONNECTION", **kwargs)


class ProviderResponseError(ProviderError):
    """Backend answered 2xx but the body was not a readable envelope."""

    def __init__(self, message: str = "Provider returned an unreadable body", **kwargs):
        super().__init__(message, error_code="PROVIDER_BAD_ENVELOPE", **kwargs)


class CircuitOpenError(ContentAutomationException):
    """Circuit breaker is open; the provider call was not attempted."""

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        provider: str,
        *,
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(
            f"Circuit breaker open for provider '{provider}'",
            severity=ErrorSeverity.WARNING,
            retryable=True,
            context={"provider": provider, "retry_after_seconds": retry_after},
            error_code="CIRCUIT_OPEN",
            **kwargs,
        )
        self.provider = provider
        self.retry_after = retry_after


# =============================================================================
# OUTPUT EXCEPTIONS
# =============================================================================


class ResponseHealingError(ContentAutomationException):
    """No repair strategy produced a usable draft from the model output."""

    category = ErrorCategory.PARSE

    def __init__(
        self,
        reason: str,
        *,
        response_text: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            f"Could not parse model response: {reason}",
            retryable=True,
            context={
                "reason": reason,
                "response_preview": response_text[:300] if response_text else None,
            },
            error_code="RESPONSE_HEALING_FAILED",
            **kwargs,
        )
        self.reason = reason


class DraftValidationError(ContentAutomationException):
    """Parsed draft or assembled document failed a quality gate."""

    category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        word_count: Optional[int] = None,
        minimum: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=True,
            context={"word_count": word_count, "minimum": minimum},
            error_code="DRAFT_VALIDATION_FAILED",
            **kwargs,
        )
        self.word_count = word_count
        self.minimum = minimum


# =============================================================================
# INPUT & TERMINAL EXCEPTIONS
# =============================================================================


class InvalidRequestError(ContentAutomationException):
    """Caller supplied an unusable request; retrying cannot help."""

    category = ErrorCategory.INPUT

    def __init__(self, message: str, *, field: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=False,
            context={"field": field},
            error_code="INVALID_REQUEST",
            **kwargs,
        )
        self.field = field


class DiscoveryError(ContentAutomationException):
    """Search API failure inside a discovery task. Never surfaces to callers."""

    category = ErrorCategory.TRANSIENT

    def __init__(self, message: str, *, query: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=True,
            context={"query": query},
            error_code="DISCOVERY_FAILED",
            **kwargs,
        )


class GenerationError(ContentAutomationException):
    """All generation attempts were exhausted."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        category: ErrorCategory,
        last_error: Optional[BaseException] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.ERROR,
            retryable=category.is_retryable,
            context={
                "attempts": attempts,
                "category": category.value,
                "last_error": str(last_error) if last_error else None,
            },
            error_code="GENERATION_FAILED",
            cause=last_error if isinstance(last_error, Exception) else None,
            **kwargs,
        )
        self.attempts = attempts
        self.category = category
        self.last_error = last_error


# =============================================================================
# CLASSIFICATION
# =============================================================================


def classify_error(exc: BaseException) -> ErrorCategory:
    """Map any exception raised during generation to an ErrorCategory."""
    if isinstance(exc, ContentAutomationException):
        return exc.category
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT
    if isinstance(exc, ValueError):
        return ErrorCategory.PARSE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ContentAutomationException",
    "ProviderError",
    "ProviderHTTPError",
    "ProviderTimeoutError",
    "ProviderConnectionError",
    "ProviderResponseError",
    "CircuitOpenError",
    "ResponseHealingError",
    "DraftValidationError",
    "InvalidRequestError",
    "DiscoveryError",
    "GenerationError",
    "classify_error",
]
