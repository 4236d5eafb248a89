"""
End-to-End Integration Tests

Runs the full generation pipeline with a scripted provider backend and a
canned search client:
- Draft request, healing, assembly, link injection and the word gates
- Retry schedule (temperature ramp and linear backoff)
- Circuit breaker behaviour across generations
- Graceful degradation when discovery fails
- HTTP surface: status codes, error envelopes, health and metrics

Testing Philosophy: Production scenario simulation with deterministic stubs
"""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.routes import content, system
from config.settings import DiscoverySettings, GenerationSettings, MonitoringSettings, Settings
from core.enums import ErrorCategory, ProviderName
from core.exceptions import (
    CircuitOpenError,
    DraftValidationError,
    GenerationError,
    InvalidRequestError,
    ProviderHTTPError,
    ResponseHealingError,
)
from core.models import GenerationRequest, LinkTarget, ProviderCredentials, ValidatedReference
from execution.reference_discovery import ReferenceDiscovery
from execution.video_discovery import VideoDiscovery
from infrastructure.llm_client import CircuitBreakerRegistry, ProviderGateway
from orchestration.content_agent import ContentOrchestrator

from conftest import ScriptedAdapter, StubSearchClient, make_article_html, make_draft_json

pytestmark = pytest.mark.integration

TOPIC = "container gardening"
DRIP = LinkTarget(url="/drip-irrigation", title="Drip Irrigation Systems")
DRIP_SENTENCE = "Many growers rely on drip irrigation systems to save water."

ORGANIC = {
    "research": [
        {"title": "Container gardening basics", "link": "https://extension.umn.edu/container-gardening"},
        {"title": "Urban growers 2024", "link": "https://www.reuters.com/lifestyle/urban-growers"},
        {"title": "My balcony pots", "link": "https://gardenblog.example/post"},
        {"title": "Pots thread", "link": "https://www.reddit.com/r/gardening/pots"},
    ]
}
VIDEOS = {
    "tutorial": [
        {
            "title": "Container Gardening Tutorial",
            "link": "https://www.youtube.com/watch?v=AAAAAAAAAAA",
            "views": "120K views",
        }
    ]
}


def full_draft() -> str:
    return make_draft_json(make_article_html(section_sentences={1: DRIP_SENTENCE}))


def make_request(credentials: Optional[ProviderCredentials] = None, **overrides) -> GenerationRequest:
    fields = {
        "topic": TOPIC,
        "provider": ProviderName.OPENAI,
        "credentials": credentials or ProviderCredentials(openai="sk-test", serper="serper-test-key"),
        "link_targets": (DRIP,),
    }
    fields.update(overrides)
    return GenerationRequest(**fields)


@pytest.fixture
def build_pipeline(breakers, metrics, no_sleep):
    """Factory wiring an orchestrator around a scripted adapter."""

    def _build(script, search: Optional[StubSearchClient] = None, **generation_overrides):
        adapter = ScriptedAdapter(ProviderName.OPENAI, script)
        gateway = ProviderGateway(
            breakers=breakers, metrics_collector=metrics, adapters={ProviderName.OPENAI: adapter}
        )
        search = search or StubSearchClient(organic=ORGANIC, videos=VIDEOS)
        generation = GenerationSettings(
            **{
                "max_attempts": 3,
                "base_delay": 1.0,
                "min_word_count": 1000,
                "min_draft_words": 800,
                "target_word_count": 1200,
                **generation_overrides,
            }
        )
        orchestrator = ContentOrchestrator(
            gateway=gateway,
            reference_discovery=ReferenceDiscovery(search, query_delay=0.0, metrics_collector=metrics),
            video_discovery=VideoDiscovery(search, query_delay=0.0, metrics_collector=metrics),
            generation=generation,
            discovery=DiscoverySettings(query_delay=0.0),
            metrics_collector=metrics,
            sleep=no_sleep,
        )
        return orchestrator, adapter, search

    return _build


# ============================================================================
# PIPELINE
# ============================================================================


class TestSuccessfulGeneration:
    @pytest.mark.asyncio
    async def test_complete_article(self, build_pipeline, metrics):
        orchestrator, adapter, _ = build_pipeline([full_draft()])

        result = await orchestrator.generate(make_request())

        contract = result.contract
        assert result.attempts == 1
        assert result.model == "gpt-4o"
        assert contract.title == "Container Gardening for Beginners"
        assert contract.slug == "container-gardening-for-beginners"
        assert contract.word_count >= 1000
        assert len(contract.faqs) == 2

        assert [ref.url for ref in contract.references] == [
            "https://extension.umn.edu/container-gardening",
            "https://www.reuters.com/lifestyle/urban-growers",
        ]
        assert contract.video.video_id == "AAAAAAAAAAA"
        assert [link.url for link in contract.internal_links] == ["/drip-irrigation"]
        assert 'href="/drip-irrigation"' in contract.html_content
        assert "<h1" not in contract.html_content

        assert adapter.calls[0]["temperature"] == 0.78
        assert TOPIC in adapter.calls[0]["prompt"]
        assert metrics.get_sample_value("generation_success_total", {"provider": "openai"}) == 1
        assert metrics.get_sample_value("heal_strategy_total", {"strategy": "direct"}) == 1
        assert metrics.get_sample_value("active_generations") == 0
        print(f"✓ Article generated: {contract.word_count} words, {len(contract.references)} references")

    @pytest.mark.asyncio
    async def test_validated_references_skip_search(self, build_pipeline):
        orchestrator, _, search = build_pipeline([full_draft()])
        validated = tuple(
            ValidatedReference(url=f"https://ref{i}.test/a", title=f"Ref {i}", is_authority=(i == 3))
            for i in range(5)
        )

        result = await orchestrator.generate(make_request(validated_references=validated))

        assert len(result.references) == 5
        assert result.references[0].url == "https://ref3.test/a"
        assert result.references[0].authority_score == 90
        assert not any("research study" in query for query in search.queries)

    @pytest.mark.asyncio
    async def test_discovery_failure_degrades_gracefully(self, build_pipeline):
        search = StubSearchClient(organic=ORGANIC, videos=VIDEOS)
        search.errors = {TOPIC: RuntimeError("search backend down")}
        orchestrator, _, _ = build_pipeline([full_draft()], search=search)

        result = await orchestrator.generate(make_request())

        assert result.references == []
        assert result.video is None
        assert result.contract.word_count >= 1000

    @pytest.mark.asyncio
    async def test_rejected_reference_task_yields_no_references(self, build_pipeline):
        orchestrator, _, _ = build_pipeline([full_draft()])
        failing = AsyncMock(side_effect=RuntimeError("reference discovery crashed"))

        with patch.object(orchestrator.reference_discovery, "discover", failing):
            result = await orchestrator.generate(make_request())

        failing.assert_awaited_once()
        assert result.references == []
        assert result.video.video_id == "AAAAAAAAAAA"
        assert result.contract.word_count >= 1000

    @pytest.mark.asyncio
    async def test_rejected_video_task_yields_no_video(self, build_pipeline):
        orchestrator, _, _ = build_pipeline([full_draft()])
        failing = AsyncMock(side_effect=RuntimeError("video discovery crashed"))

        with patch.object(orchestrator.video_discovery, "discover", failing):
            result = await orchestrator.generate(make_request())

        assert result.video is None
        assert len(result.references) == 2

    @pytest.mark.asyncio
    async def test_slow_discovery_is_abandoned_at_its_timeout(self, build_pipeline):
        orchestrator, _, _ = build_pipeline([full_draft()])
        orchestrator.discovery = DiscoverySettings(
            query_delay=0.0, reference_timeout=1.0, video_timeout=1.0
        )

        async def never_finishes(*args, **kwargs):
            await asyncio.sleep(30)

        with patch.object(orchestrator.reference_discovery, "discover", never_finishes), patch.object(
            orchestrator.video_discovery, "discover", never_finishes
        ):
            result = await asyncio.wait_for(orchestrator.generate(make_request()), timeout=10)

        assert result.references == []
        assert result.video is None
        assert result.attempts == 1
        print("✓ Generation completed without the timed-out discovery results")

    @pytest.mark.asyncio
    async def test_missing_search_key_skips_discovery(self, build_pipeline):
        orchestrator, _, search = build_pipeline([full_draft()])

        result = await orchestrator.generate(make_request(ProviderCredentials(openai="sk-test")))

        assert search.queries == []
        assert result.references == []


class TestRetries:
    @pytest.mark.asyncio
    async def test_unparseable_draft_retried_with_warmer_temperature(self, build_pipeline, no_sleep):
        orchestrator, adapter, _ = build_pipeline(["I'm sorry, here is no JSON", full_draft()])

        result = await orchestrator.generate(make_request())

        assert result.attempts == 2
        assert [call["temperature"] for call in adapter.calls] == [0.78, 0.82]
        assert no_sleep.delays == [1.0]
        print("✓ Recovered on second attempt after unparseable output")

    @pytest.mark.asyncio
    async def test_exhausted_attempts(self, build_pipeline, no_sleep, metrics):
        orchestrator, adapter, _ = build_pipeline(["still not json"])

        with pytest.raises(GenerationError) as exc_info:
            await orchestrator.generate(make_request())

        error = exc_info.value
        assert error.attempts == 3
        assert error.category == ErrorCategory.PARSE
        assert isinstance(error.last_error, ResponseHealingError)
        assert len(adapter.calls) == 3
        assert no_sleep.delays == [1.0, 2.0]
        assert metrics.get_sample_value(
            "generation_failure_total", {"provider": "openai", "category": "parse"}
        ) == 1

    @pytest.mark.asyncio
    async def test_short_draft_fails_validation(self, build_pipeline):
        orchestrator, _, _ = build_pipeline([make_draft_json(make_article_html(sections=2))])

        with pytest.raises(GenerationError) as exc_info:
            await orchestrator.generate(make_request())

        assert exc_info.value.category == ErrorCategory.VALIDATION
        assert isinstance(exc_info.value.last_error, DraftValidationError)

    @pytest.mark.asyncio
    async def test_final_word_gate(self, build_pipeline):
        orchestrator, _, _ = build_pipeline(
            [full_draft()], max_attempts=1, min_draft_words=0, min_word_count=5000
        )

        with pytest.raises(GenerationError) as exc_info:
            await orchestrator.generate(make_request())

        last_error = exc_info.value.last_error
        assert isinstance(last_error, DraftValidationError)
        assert last_error.minimum == 5000

    @pytest.mark.asyncio
    async def test_missing_provider_key_fails_fast(self, build_pipeline):
        orchestrator, adapter, search = build_pipeline([full_draft()])

        with pytest.raises(InvalidRequestError) as exc_info:
            await orchestrator.generate(make_request(ProviderCredentials(anthropic="sk-ant")))

        assert exc_info.value.field == "credentials.openai"
        assert adapter.calls == []
        assert search.queries == []

    @pytest.mark.asyncio
    async def test_unreachable_word_target_fails_fast(self, build_pipeline, metrics):
        orchestrator, adapter, search = build_pipeline([full_draft()])

        with pytest.raises(InvalidRequestError) as exc_info:
            await orchestrator.generate(make_request(target_word_count=500))

        assert exc_info.value.field == "target_word_count"
        assert adapter.calls == []
        assert search.queries == []
        assert metrics.get_sample_value("active_generations") == 0

    @pytest.mark.asyncio
    async def test_word_target_at_the_gate_is_accepted(self, build_pipeline):
        orchestrator, adapter, _ = build_pipeline([full_draft()])

        result = await orchestrator.generate(make_request(target_word_count=1000))

        assert result.attempts == 1
        assert "1000" in adapter.calls[0]["prompt"]


class TestCircuitBreaking:
    @pytest.mark.asyncio
    async def test_breaker_opens_across_generations(self, build_pipeline, breakers, metrics):
        orchestrator, adapter, _ = build_pipeline([ProviderHTTPError(503, provider="openai")])

        with pytest.raises(GenerationError) as first:
            await orchestrator.generate(make_request())
        assert isinstance(first.value.last_error, ProviderHTTPError)
        assert first.value.category == ErrorCategory.TRANSIENT

        with pytest.raises(GenerationError) as second:
            await orchestrator.generate(make_request())

        assert isinstance(second.value.last_error, CircuitOpenError)
        assert len(adapter.calls) == 3
        assert orchestrator.circuit_status()["openai"]["state"] == "open"
        assert metrics.get_sample_value("circuit_rejections_total", {"provider": "openai"}) == 3
        print("✓ Open circuit rejected later attempts without calling the provider")

    @pytest.mark.asyncio
    async def test_breakers_are_per_orchestrator(self, build_pipeline, metrics, clock, no_sleep):
        failing, _, _ = build_pipeline([ProviderHTTPError(503, provider="openai")])
        with pytest.raises(GenerationError):
            await failing.generate(make_request())

        adapter = ScriptedAdapter(ProviderName.OPENAI, [full_draft()])
        search = StubSearchClient(organic=ORGANIC, videos=VIDEOS)
        healthy = ContentOrchestrator(
            gateway=ProviderGateway(
                breakers=CircuitBreakerRegistry(clock=clock),
                adapters={ProviderName.OPENAI: adapter},
            ),
            reference_discovery=ReferenceDiscovery(search, query_delay=0.0),
            video_discovery=VideoDiscovery(search, query_delay=0.0),
            generation=GenerationSettings(
                min_word_count=1000, min_draft_words=800, target_word_count=1200
            ),
            sleep=no_sleep,
        )

        result = await healthy.generate(make_request())

        assert result.attempts == 1
        assert failing.circuit_status()["openai"]["state"] == "open"


# ============================================================================
# HTTP SURFACE
# ============================================================================


@pytest.fixture
def api_client(build_pipeline, metrics):
    """TestClient factory with the orchestrator dependency overridden."""
    created = {}

    def _client(script, **generation_overrides):
        orchestrator, adapter, _ = build_pipeline(script, **generation_overrides)
        app.dependency_overrides[content.get_orchestrator_dependency] = lambda: orchestrator
        app.dependency_overrides[system.get_orchestrator_dependency] = lambda: orchestrator
        app.dependency_overrides[system.get_metrics_dependency] = lambda: metrics
        created["adapter"] = adapter
        created["orchestrator"] = orchestrator
        return TestClient(app), created

    yield _client
    app.dependency_overrides.clear()


PAYLOAD = {
    "topic": TOPIC,
    "provider": "openai",
    "credentials": {"openai": "sk-test", "serper": "serper-test-key"},
    "link_targets": [{"url": "/drip-irrigation", "title": "Drip Irrigation Systems"}],
}


class TestHTTPSurface:
    def test_generate_returns_contract(self, api_client):
        client, _ = api_client([full_draft()])

        response = client.post("/content/generate", json=PAYLOAD)

        assert response.status_code == 200
        body = response.json()
        assert body["slug"] == "container-gardening-for-beginners"
        assert body["method"] == "single-shot"
        assert body["provider"] == "openai"
        assert body["internal_links"][0]["url"] == "/drip-irrigation"
        assert body["video"]["video_id"] == "AAAAAAAAAAA"
        assert "X-Request-ID" in response.headers
        print("✓ POST /content/generate returned the article contract")

    def test_google_alias_accepted(self, api_client):
        client, created = api_client([full_draft()])
        created["orchestrator"].gateway.adapters[ProviderName.GEMINI] = ScriptedAdapter(
            ProviderName.GEMINI, [full_draft()]
        )
        payload = {**PAYLOAD, "provider": "google", "credentials": {"google": "g-key"}}

        response = client.post("/content/generate", json=payload)

        assert response.status_code == 200
        assert response.json()["provider"] == "gemini"

    def test_unsupported_provider(self, api_client):
        client, created = api_client([full_draft()])

        response = client.post("/content/generate", json={**PAYLOAD, "provider": "bogus"})

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "INVALID_REQUEST"
        assert body["category"] == "input"
        assert created["adapter"].calls == []

    def test_schema_validation_error(self, api_client):
        client, _ = api_client([full_draft()])

        response = client.post("/content/generate", json={**PAYLOAD, "topic": ""})

        assert response.status_code == 422
        assert response.json()["error"] == "Validation Error"

    def test_exhausted_generation_is_bad_gateway(self, api_client):
        client, _ = api_client(["not json"], max_attempts=1)

        response = client.post("/content/generate", json=PAYLOAD)

        assert response.status_code == 502
        body = response.json()
        assert body["error_code"] == "GENERATION_FAILED"
        assert body["category"] == "parse"
        assert body["detail"]["attempts"] == 1

    def test_open_circuit_is_service_unavailable(self, api_client, breakers):
        client, created = api_client([full_draft()], max_attempts=1)
        for _ in range(3):
            breakers.record_failure(ProviderName.OPENAI)

        response = client.post("/content/generate", json=PAYLOAD)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "61"
        assert response.json()["error_code"] == "CIRCUIT_OPEN"
        assert created["adapter"].calls == []

    def test_health_reports_degraded_circuit(self, api_client, breakers):
        client, _ = api_client([full_draft()])

        assert client.get("/system/health").json()["status"] == "healthy"

        for _ in range(3):
            breakers.record_failure(ProviderName.OPENAI)
        body = client.get("/system/health").json()

        assert body["status"] == "degraded"
        assert body["dependencies"] == {"openai": "open"}

    def test_metrics_endpoint(self, api_client):
        client, _ = api_client([full_draft()])
        client.post("/content/generate", json=PAYLOAD)

        response = client.get("/system/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'generation_success_total{provider="openai"} 1.0' in response.text

    def test_metrics_export_can_be_disabled(self, api_client):
        client, _ = api_client([full_draft()])
        app.dependency_overrides[system.get_settings_dependency] = lambda: Settings(
            monitoring=MonitoringSettings(enable_prometheus=False)
        )

        response = client.get("/system/metrics")

        assert response.status_code == 404

    def test_circuits_endpoint(self, api_client, breakers):
        client, _ = api_client([full_draft()])
        for _ in range(3):
            breakers.record_failure(ProviderName.OPENAI)

        circuits = client.get("/system/circuits").json()["circuits"]

        assert circuits["openai"]["state"] == "open"
        assert circuits["openai"]["failures"] == 3
        assert circuits["openai"]["retry_after"] == 60.0
