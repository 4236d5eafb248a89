"""
Response Healer: Structured Draft Recovery
===========================================
Turns raw model text into a ParsedDraft. Models wrap JSON in prose or code
fences, leave trailing commas, or stop before the final closing braces; each
strategy below addresses one of those and they are tried in a fixed order.

Strategies:
1. direct         - parse the text as-is
2. fenced         - contents of the first ``` / ```json block
3. brace_slice    - first '{' through last '}'
4. trailing_comma - brace slice with ",}" / ",]" removed
5. brace_balance  - append the missing closing braces

A candidate is accepted only when it decodes to an object carrying the
required htmlContent field.

Architecture: Chain of Responsibility
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from loguru import logger
from pydantic import ValidationError

from config.constants import REQUIRED_DRAFT_FIELD
from core.exceptions import ResponseHealingError
from core.models import ParsedDraft

FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)
TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")


@dataclass(frozen=True)
class HealResult:
    draft: ParsedDraft
    strategy: str


def _brace_slice(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def _direct(text: str) -> Optional[str]:
    return text.strip() or None


def _fenced(text: str) -> Optional[str]:
    match = FENCE_PATTERN.search(text)
    return match.group(1).strip() if match else None


def _trailing_comma(text: str) -> Optional[str]:
    sliced = _brace_slice(text)
    if sliced is None:
        return None
    return TRAILING_COMMA_PATTERN.sub(r"\1", sliced)


def _brace_balance(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None
    candidate = TRAILING_COMMA_PATTERN.sub(r"\1", text[start:].rstrip())
    missing = candidate.count("{") - candidate.count("}")
    if missing <= 0:
        return None
    return candidate + "}" * missing


STRATEGIES: tuple[tuple[str, Callable[[str], Optional[str]]], ...] = (
    ("direct", _direct),
    ("fenced", _fenced),
    ("brace_slice", _brace_slice),
    ("trailing_comma", _trailing_comma),
    ("brace_balance", _brace_balance),
)


def _decode(candidate: str) -> Optional[dict[str, Any]]:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(value, dict) or not value.get(REQUIRED_DRAFT_FIELD):
        return None
    return value


def heal_with_strategy(raw_text: str) -> HealResult:
    """
    Recover a draft and report which strategy succeeded.

    Raises:
        ResponseHealingError: No strategy yielded a usable draft
    """
    if not raw_text or not raw_text.strip():
        raise ResponseHealingError("empty response", response_text=raw_text)

    for name, strategy in STRATEGIES:
        candidate = strategy(raw_text)
        if candidate is None:
            continue
        decoded = _decode(candidate)
        if decoded is None:
            continue
        try:
            draft = ParsedDraft.model_validate(decoded)
        except ValidationError as e:
            logger.debug(f"Healing candidate rejected | strategy={name} errors={e.error_count()}")
            continue
        if name != "direct":
            logger.info(f"Model response healed | strategy={name}")
        return HealResult(draft=draft, strategy=name)

    raise ResponseHealingError(
        f"no strategy produced an object with '{REQUIRED_DRAFT_FIELD}'",
        response_text=raw_text,
    )


def heal(raw_text: str) -> ParsedDraft:
    """Recover a ParsedDraft from raw model text."""
    return heal_with_strategy(raw_text).draft
