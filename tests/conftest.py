"""
Pytest Configuration and Fixture Library

Shared test infrastructure:
- Deterministic clock and no-op sleep for time-dependent components
- Isolated metrics collectors (one registry per test)
- Credential and article-draft builders
- Stub provider adapter and search client

Design Pattern: Test Data Builder + Fixture Factory
"""

import json
from typing import Dict, List, Optional, Sequence

import pytest

from core.enums import ProviderName
from core.models import ProviderCredentials, SamplingConfig
from infrastructure.llm_client import AbstractProviderAdapter, CircuitBreakerRegistry
from infrastructure.monitoring import MetricsCollector
from infrastructure.search_client import SerperSearchResponse, SerperVideoResponse

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as end-to-end pipeline test")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")


# ============================================================================
# TIME CONTROL
# ============================================================================


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that returns immediately and records delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


# ============================================================================
# INFRASTRUCTURE FIXTURES
# ============================================================================


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector with its own registry."""
    return MetricsCollector()


@pytest.fixture
def breakers(clock) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(failure_threshold=3, recovery_timeout=60.0, clock=clock)


@pytest.fixture
def credentials() -> ProviderCredentials:
    return ProviderCredentials(
        google="google-test-key",
        openrouter="openrouter-test-key",
        openai="openai-test-key",
        anthropic="anthropic-test-key",
        groq="groq-test-key",
        serper="serper-test-key",
    )


@pytest.fixture
def sampling() -> SamplingConfig:
    return SamplingConfig(temperature=0.78, max_output_tokens=4000)


# ============================================================================
# TEST DATA BUILDERS
# ============================================================================

FILLER_SENTENCE = (
    "Good soil preparation and steady watering routines help every plant grow "
    "stronger through the changing seasons of the year"
)


def paragraph(words: int, seed: str = "") -> str:
    """Plain paragraph text of roughly the requested word count."""
    base = FILLER_SENTENCE.split()
    body = [base[i % len(base)] for i in range(words)]
    text = " ".join(body)
    return f"{seed} {text}".strip() if seed else text


def make_article_html(
    sections: int = 10,
    paragraphs_per_section: int = 2,
    words_per_paragraph: int = 80,
    section_sentences: Optional[Dict[int, str]] = None,
) -> str:
    """
    Intro plus <h2> sections of filler paragraphs.

    section_sentences maps a section number (1-based) to a sentence that is
    prepended to that section's first paragraph.
    """
    section_sentences = section_sentences or {}
    parts = [f"<p>{paragraph(words_per_paragraph)}</p>"]
    for number in range(1, sections + 1):
        parts.append(f"<h2>Section {number}</h2>")
        for index in range(paragraphs_per_section):
            seed = section_sentences.get(number, "") if index == 0 else ""
            parts.append(f"<p>{paragraph(words_per_paragraph, seed)}</p>")
    return "".join(parts)


def make_draft_payload(html: Optional[str] = None, **overrides) -> Dict:
    payload = {
        "title": "Container Gardening for Beginners",
        "metaDescription": "Everything you need to start a container garden.",
        "slug": "container-gardening-for-beginners",
        "htmlContent": html if html is not None else make_article_html(),
        "excerpt": "A practical introduction to container gardening.",
        "wordCount": 1800,
        "faqs": [
            {
                "question": "How often should I water containers?",
                "answer": "Check the soil daily in summer and water when the top inch is dry.",
            },
            {
                "question": "Which pots drain best?",
                "answer": "Terracotta and fabric pots with drainage holes drain most reliably.",
            },
        ],
    }
    payload.update(overrides)
    return payload


def make_draft_json(html: Optional[str] = None, **overrides) -> str:
    return json.dumps(make_draft_payload(html, **overrides))


# ============================================================================
# STUBS
# ============================================================================


class ScriptedAdapter(AbstractProviderAdapter):
    """
    Provider adapter that replays a script of responses.

    Each script entry is either a string (returned as the model text) or an
    exception instance (raised).
    """

    def __init__(self, provider: ProviderName, script: Sequence):
        self.provider = provider
        self.script = list(script)
        self.calls: List[Dict] = []
        self.closed = False

    async def call(self, prompt, system_prompt, sampling, credentials, model, timeout):
        self._require_key(credentials)
        self.calls.append(
            {
                "prompt": prompt,
                "system_prompt": system_prompt,
                "temperature": sampling.temperature,
                "model": model,
                "timeout": timeout,
            }
        )
        outcome = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


class StubSearchClient:
    """Search client returning canned Serper payloads keyed by query substring."""

    def __init__(self, organic: Optional[Dict[str, list]] = None, videos: Optional[Dict[str, list]] = None):
        self.organic = organic or {}
        self.video_results = videos or {}
        self.queries: List[str] = []
        self.errors: Dict[str, Exception] = {}

    def _lookup(self, table: Dict[str, list], query: str) -> list:
        for fragment, results in table.items():
            if fragment in query:
                return results
        return []

    def _raise_if_scripted(self, query: str) -> None:
        for fragment, error in self.errors.items():
            if fragment in query:
                raise error

    async def search(self, query, api_key, timeout=30.0):
        self.queries.append(query)
        self._raise_if_scripted(query)
        return SerperSearchResponse.model_validate({"organic": self._lookup(self.organic, query)})

    async def videos(self, query, api_key, timeout=20.0):
        self.queries.append(query)
        self._raise_if_scripted(query)
        return SerperVideoResponse.model_validate({"videos": self._lookup(self.video_results, query)})

    async def aclose(self) -> None:
        return None
