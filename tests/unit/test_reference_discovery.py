"""
Unit Tests for Reference Discovery

Authority scoring, source naming, ranking and the never-fail contract of the
discovery task.
"""

import asyncio

import pytest

from core.exceptions import DiscoveryError
from core.models import DiscoveredReference, ValidatedReference
from execution.reference_discovery import (
    ReferenceDiscovery,
    calculate_authority_score,
    extract_source_name,
    extract_year,
    is_blocked_domain,
    rank_references,
    references_from_validated,
)

from conftest import StubSearchClient


class TestAuthorityScoring:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.cdc.gov/nutrition/index.html", 95),
            ("https://extension.umn.edu/yard-and-garden", 95),
            ("https://www.nature.com/articles/abc", 88),
            ("https://www.reuters.com/world/", 82),
            ("https://news.bbc.co.uk/story", 82),
            ("https://www.wired.com/story/x", 75),
            ("https://en.wikipedia.org/wiki/Compost", 72),
            ("https://gardenblog.example/post", 50),
            ("http://gardenblog.example/post", 30),
            ("not a url", 0),
        ],
    )
    def test_tier_scores(self, url, expected):
        assert calculate_authority_score(url) == expected

    def test_lookalike_domain_does_not_inherit_tier(self):
        assert calculate_authority_score("https://notreuters.com/story") == 50

    def test_source_names(self):
        assert extract_source_name("https://www.nytimes.com/2024/a") == "The New York Times"
        assert extract_source_name("https://www.gardeners.com/how-to") == "Gardeners"

    def test_blocked_domains(self):
        assert is_blocked_domain("https://www.reddit.com/r/gardening")
        assert is_blocked_domain("https://m.facebook.com/page")
        assert not is_blocked_domain("https://www.rhs.org.uk/advice")

    def test_year_extraction(self):
        assert extract_year(None, "Updated in 2023 with new data") == 2023
        assert extract_year("No year here", "") is None


class TestRanking:
    def _ref(self, url, score):
        return DiscoveredReference(url=url, title=url, source="S", authority_score=score)

    def test_sorted_unique_and_truncated(self):
        refs = [
            self._ref("https://a.test", 50),
            self._ref("https://b.test", 95),
            self._ref("https://a.test", 99),
            self._ref("https://c.test", 82),
            self._ref("https://d.test", 82),
        ]

        ranked = rank_references(refs, limit=3)

        assert [r.url for r in ranked] == ["https://b.test", "https://c.test", "https://d.test"]

    def test_validated_references_conversion(self):
        validated = [
            ValidatedReference(url="https://blog.test/a", title="Blog post"),
            ValidatedReference(url="https://www.cdc.gov/b", title="CDC page", is_authority=True),
            ValidatedReference(url="", title="Skipped"),
        ]

        converted = references_from_validated(validated, limit=10)

        assert [r.authority_score for r in converted] == [90, 70]
        assert converted[0].source == "CDC"
        assert converted[1].source == "Blog"


ORGANIC = [
    {"title": "Composting basics", "link": "https://www.epa.gov/recycle/composting", "snippet": "2024 guide"},
    {"title": "Compost science", "link": "https://www.nature.com/articles/compost"},
    {"title": "Reddit thread", "link": "https://www.reddit.com/r/composting"},
    {"title": "Random blog", "link": "https://compostfan.example/post"},
    {"title": "", "link": "https://www.reuters.com/untitled"},
]


class TestReferenceDiscovery:
    @pytest.mark.asyncio
    async def test_filters_scores_and_ranks(self, no_sleep, metrics):
        client = StubSearchClient(organic={"composting": ORGANIC})
        discovery = ReferenceDiscovery(client, metrics_collector=metrics, sleep=no_sleep)

        refs = await discovery.discover("composting", "serper-key", target_count=10, min_authority_score=60)

        assert [r.url for r in refs] == [
            "https://www.epa.gov/recycle/composting",
            "https://www.nature.com/articles/compost",
        ]
        assert refs[0].year == 2024
        assert refs[0].favicon.endswith("domain=epa.gov&sz=32")
        assert len(client.queries) == 3
        assert no_sleep.delays == [0.3, 0.3]
        assert metrics.get_sample_value("discovery_results_sum", {"kind": "references"}) == 2
        print("✓ Reference discovery filtered blocked and low-authority results")

    @pytest.mark.asyncio
    async def test_missing_key_skips_search(self, no_sleep):
        client = StubSearchClient(organic={"composting": ORGANIC})

        refs = await ReferenceDiscovery(client, sleep=no_sleep).discover("composting", None)

        assert refs == []
        assert client.queries == []

    @pytest.mark.asyncio
    async def test_failed_query_is_skipped(self, no_sleep):
        client = StubSearchClient(organic={"composting": ORGANIC})
        client.errors = {"research study": DiscoveryError("HTTP 500")}

        refs = await ReferenceDiscovery(client, sleep=no_sleep).discover("composting", "key")

        assert len(refs) == 2
        assert len(client.queries) == 3

    @pytest.mark.asyncio
    async def test_unexpected_error_yields_empty_list(self, no_sleep):
        client = StubSearchClient()
        client.errors = {"composting": RuntimeError("boom")}

        refs = await ReferenceDiscovery(client, sleep=no_sleep).discover("composting", "key")

        assert refs == []

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, no_sleep):
        client = StubSearchClient()
        client.errors = {"composting": asyncio.CancelledError()}

        with pytest.raises(asyncio.CancelledError):
            await ReferenceDiscovery(client, sleep=no_sleep).discover("composting", "key")
