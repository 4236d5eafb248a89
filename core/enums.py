"""
Domain Enumerations & Type Taxonomy
====================================
Type-safe enumerations for providers, circuit states, pipeline stages and
error classification.

Architecture: Type-Driven Design + ADT (Algebraic Data Types)
"""

from enum import Enum, IntEnum
from typing import Optional


class ProviderName(str, Enum):
    """
    Supported text-generation backends.

    ``google`` is accepted as an alias of ``gemini`` on input.
    """

    GEMINI = "gemini"
    OPENROUTER = "openrouter"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GROQ = "groq"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "google":
                return cls.GEMINI
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def credential_field(self) -> str:
        """Name of the ProviderCredentials field holding this provider's key."""
        return "google" if self is ProviderName.GEMINI else self.value

    @property
    def is_openai_compatible(self) -> bool:
        return self in (ProviderName.OPENAI, ProviderName.OPENROUTER, ProviderName.GROQ)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing recovery


class GenerationStage(str, Enum):
    """
    Pipeline stages of a single generation.

    Transitions are validated so a terminal generation cannot be resumed.
    """

    IDLE = "idle"
    REQUESTING_DRAFT = "requesting_draft"
    HEALING = "healing"
    AWAITING_DISCOVERY = "awaiting_discovery"
    ASSEMBLING = "assembling"
    LINK_INJECTING = "link_injecting"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStage.DONE, GenerationStage.FAILED)

    def can_transition_to(self, target: "GenerationStage") -> bool:
        """Validate a stage transition."""
        if self.is_terminal:
            return False
        if target is GenerationStage.FAILED:
            return True
        # A retried attempt starts over from the draft request
        if target is GenerationStage.REQUESTING_DRAFT:
            return True
        order = list(GenerationStage)
        return order.index(target) == order.index(self) + 1


class GenerationMethod(str, Enum):
    """How the final document was produced."""

    SINGLE_SHOT = "single-shot"


class ContentTone(str, Enum):
    """Voice requested for the article."""

    CONVERSATIONAL = "conversational"
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    AUTHORITATIVE = "authoritative"
    EDUCATIONAL = "educational"

    def __str__(self) -> str:
        return self.value.replace("_", " ")


class ErrorCategory(str, Enum):
    """
    Failure classification surfaced on terminal generation errors.

    Lets callers decide between retrying later, fixing input, or reporting.
    """

    TRANSIENT = "transient"  # Provider/network; retry later
    PARSE = "parse"  # Model output could not be healed
    VALIDATION = "validation"  # Output parsed but failed a quality gate
    INPUT = "input"  # Caller error; do not retry
    UNKNOWN = "unknown"

    @property
    def is_retryable(self) -> bool:
        return self in (ErrorCategory.TRANSIENT, ErrorCategory.PARSE, ErrorCategory.VALIDATION)


class ErrorSeverity(IntEnum):
    """
    Error classification by impact severity.

    Determines alerting and retry strategies.
    """

    CRITICAL = 5  # System failure, immediate intervention required
    ERROR = 4  # Operation failed, automatic retry possible
    WARNING = 3  # Degraded performance, monitoring needed
    INFO = 2  # Notable event, no action required
    DEBUG = 1  # Diagnostic information

    @property
    def should_alert(self) -> bool:
        """Determine if severity warrants immediate alert."""
        return self >= self.ERROR


def get_enum_by_value(enum_class: type[Enum], value: str) -> Optional[Enum]:
    """
    Safe enum lookup by value with None fallback.

    Args:
        enum_class: The enum class to search
        value: The value to find

    Returns:
        Enum member or None if not found
    """
    try:
        return enum_class(value)
    except ValueError:
        return None
