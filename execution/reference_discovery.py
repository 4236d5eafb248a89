"""
Reference Discovery: Authoritative Source Search
=================================================
Finds external references for a topic through web search, scores each hit
against a static authority table and returns the strongest unique sources.

Discovery runs beside the draft request and must never fail the
generation: every error is logged and an empty list returned instead.

Architecture: Pipeline (query → filter → score → dedupe → rank)
"""

import asyncio
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlparse

from loguru import logger

from config.constants import (
    AUTHORITY_TIERS,
    BLOCKED_REFERENCE_DOMAINS,
    FAVICON_URL_TEMPLATE,
    HTTP_DEFAULT_AUTHORITY,
    HTTPS_DEFAULT_AUTHORITY,
    REFERENCE_QUERY_TEMPLATES,
    SOURCE_DISPLAY_NAMES,
    YEAR_PATTERN,
)
from core.exceptions import DiscoveryError
from core.models import DiscoveredReference, ValidatedReference
from infrastructure.search_client import SerperSearchClient


def _hostname(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _matches_domain(host: str, domain: str) -> bool:
    """Suffix-style match: '.gov' matches any *.gov host, 'bbc.com' matches news.bbc.com."""
    if domain.startswith("."):
        return host.endswith(domain)
    return host == domain or host.endswith("." + domain)


def calculate_authority_score(url: str) -> int:
    """
    Authority score for a URL from the static tier table.

    Unlisted domains score by scheme alone: HTTPS above plain HTTP.
    """
    host = _hostname(url)
    if not host:
        return 0
    for tier in AUTHORITY_TIERS:
        if any(_matches_domain(host, domain) for domain in tier.domains):
            return tier.score
    return HTTPS_DEFAULT_AUTHORITY if urlparse(url).scheme == "https" else HTTP_DEFAULT_AUTHORITY


def extract_source_name(url: str) -> str:
    """Readable publisher name: known name, else capitalised first host label."""
    host = _hostname(url)
    for domain, name in SOURCE_DISPLAY_NAMES.items():
        if _matches_domain(host, domain):
            return name
    label = host.split(".")[0] if host else ""
    return label.capitalize() if label else "Unknown"


def is_blocked_domain(url: str) -> bool:
    host = _hostname(url)
    return any(_matches_domain(host, domain) for domain in BLOCKED_REFERENCE_DOMAINS)


def extract_year(*texts: Optional[str]) -> Optional[int]:
    for text in texts:
        if not text:
            continue
        match = YEAR_PATTERN.search(text)
        if match:
            return int(match.group(1))
    return None


def favicon_url(url: str) -> Optional[str]:
    host = _hostname(url)
    return FAVICON_URL_TEMPLATE.format(domain=host) if host else None


def rank_references(
    references: Iterable[DiscoveredReference], limit: int
) -> List[DiscoveredReference]:
    """Authority-descending, URL-unique, truncated to limit. Stable for ties."""
    seen = set()
    unique = []
    for reference in references:
        if reference.url in seen:
            continue
        seen.add(reference.url)
        unique.append(reference)
    unique.sort(key=lambda r: r.authority_score, reverse=True)
    return unique[:limit]


def references_from_validated(
    validated: Sequence[ValidatedReference], limit: int
) -> List[DiscoveredReference]:
    """Convert caller-supplied references; authority-flagged entries rank first."""
    converted = [
        DiscoveredReference(
            url=item.url,
            title=item.title,
            source=item.source or extract_source_name(item.url),
            authority_score=90 if item.is_authority else 70,
            snippet=item.snippet,
            year=item.year,
            favicon=favicon_url(item.url),
        )
        for item in validated
        if item.url and item.title
    ]
    return rank_references(converted, limit)


class ReferenceDiscovery:
    """Topic → ranked authoritative references."""

    def __init__(
        self,
        search_client: SerperSearchClient,
        query_delay: float = 0.3,
        timeout: float = 30.0,
        metrics_collector=None,
        sleep=asyncio.sleep,
    ):
        self.search_client = search_client
        self.query_delay = query_delay
        self.timeout = timeout
        self.metrics_collector = metrics_collector
        self._sleep = sleep

    async def discover(
        self,
        topic: str,
        api_key: Optional[str],
        target_count: int = 10,
        min_authority_score: int = 60,
    ) -> List[DiscoveredReference]:
        """
        Search, filter and rank references for a topic.

        Never raises; a missing key or failed search yields fewer (or no)
        references.
        """
        if not api_key:
            logger.warning("Reference discovery skipped | reason=no_search_key")
            return []

        try:
            references = await self._collect(topic, api_key, min_authority_score)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Reference discovery failed | topic={topic!r} error={e}")
            references = []

        ranked = rank_references(references, target_count)
        if self.metrics_collector:
            self.metrics_collector.record_discovery("references", len(ranked))
        logger.info(f"Reference discovery complete | topic={topic!r} found={len(ranked)}")
        return ranked

    async def _collect(
        self, topic: str, api_key: str, min_authority_score: int
    ) -> List[DiscoveredReference]:
        collected: List[DiscoveredReference] = []
        seen_urls = set()

        for index, template in enumerate(REFERENCE_QUERY_TEMPLATES):
            if index > 0 and self.query_delay > 0:
                await self._sleep(self.query_delay)

            query = template.format(topic=topic)
            try:
                response = await self.search_client.search(query, api_key, timeout=self.timeout)
            except DiscoveryError as e:
                logger.warning(f"Reference query failed | query={query!r} error={e.message}")
                continue

            for hit in response.organic:
                if not hit.link or not hit.title or hit.link in seen_urls:
                    continue
                if is_blocked_domain(hit.link):
                    continue
                score = calculate_authority_score(hit.link)
                if score < min_authority_score:
                    continue
                seen_urls.add(hit.link)
                collected.append(
                    DiscoveredReference(
                        url=hit.link,
                        title=hit.title,
                        source=extract_source_name(hit.link),
                        authority_score=score,
                        snippet=hit.snippet,
                        year=extract_year(hit.title, hit.snippet, hit.date),
                        favicon=favicon_url(hit.link),
                    )
                )

        return collected
