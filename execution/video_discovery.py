"""
Video Discovery: Embeddable Tutorial Search
============================================
Finds one YouTube video worth embedding for a topic. Candidates come from the
search API's video endpoint, are filtered by URL shape and view count, and
are scored by title overlap with the topic plus a popularity bonus.

Like reference discovery, this task never fails the generation.
"""

import asyncio
import re
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

from loguru import logger

from config.constants import (
    VIDEO_BASE_RELEVANCE,
    VIDEO_GOOD_CANDIDATES_TO_STOP,
    VIDEO_GOOD_SCORE,
    VIDEO_ID_PATTERNS,
    VIDEO_MAX_OVERLAP_BONUS,
    VIDEO_QUERY_TEMPLATES,
    VIEW_BONUS_TIERS,
    VIEW_MULTIPLIERS,
    YOUTUBE_DOMAINS,
    YOUTUBE_EMBED_TEMPLATE,
    YOUTUBE_THUMBNAIL_TEMPLATE,
)
from core.exceptions import DiscoveryError
from core.models import DiscoveredVideo
from infrastructure.search_client import SerperSearchClient, SerperVideoResult

VIEW_COUNT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*([kmb])?")
WORD_PATTERN = re.compile(r"[a-z0-9]+")


def extract_video_id(url: str) -> Optional[str]:
    """11-character YouTube ID from watch, short-link, embed or shorts URLs."""
    if not url:
        return None
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def is_youtube_url(url: str) -> bool:
    """True when the URL's host is a YouTube domain or one of its subdomains."""
    host = (urlparse(url).hostname or "").lower()
    return any(host == domain or host.endswith("." + domain) for domain in YOUTUBE_DOMAINS)


def parse_view_count(views: Union[int, str, None]) -> int:
    """
    Parse view counts like '1,234', '12K views', '1.5M'.

    Unparseable input counts as zero views.
    """
    if views is None:
        return 0
    if isinstance(views, int):
        return max(0, views)

    text = str(views).lower().replace(",", "").strip()
    match = VIEW_COUNT_PATTERN.search(text)
    if not match:
        return 0
    number = float(match.group(1))
    suffix = match.group(2)
    if suffix:
        number *= VIEW_MULTIPLIERS[suffix]
    return int(number)


def topic_words(topic: str) -> List[str]:
    return [word for word in WORD_PATTERN.findall(topic.lower()) if len(word) > 3]


def score_video(title: str, topic: str, views: int) -> int:
    """Relevance 0-100: base + topic overlap share + view-tier bonus."""
    words = topic_words(topic)
    lowered = title.lower()
    overlap = 0
    if words:
        matching = sum(1 for word in words if word in lowered)
        overlap = min(VIDEO_MAX_OVERLAP_BONUS, round(matching / len(words) * VIDEO_MAX_OVERLAP_BONUS))

    bonus = 0
    for threshold, tier_bonus in VIEW_BONUS_TIERS:
        if views >= threshold:
            bonus = tier_bonus
            break

    return min(100, VIDEO_BASE_RELEVANCE + overlap + bonus)


class VideoDiscovery:
    """Topic → best embeddable video, or None."""

    def __init__(
        self,
        search_client: SerperSearchClient,
        min_views: int = 5000,
        query_delay: float = 0.3,
        timeout: float = 20.0,
        metrics_collector=None,
        sleep=asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.search_client = search_client
        self.min_views = min_views
        self.query_delay = query_delay
        self.timeout = timeout
        self.metrics_collector = metrics_collector
        self._sleep = sleep
        self._clock = clock

    def _candidate(self, hit: SerperVideoResult, topic: str) -> Optional[DiscoveredVideo]:
        if not hit.link or not is_youtube_url(hit.link):
            return None
        video_id = extract_video_id(hit.link)
        if video_id is None:
            return None
        views = parse_view_count(hit.views)
        if views < self.min_views:
            return None
        return DiscoveredVideo(
            video_id=video_id,
            title=hit.title,
            channel=hit.channel or "",
            views=views,
            relevance_score=score_video(hit.title, topic, views),
            duration=hit.duration,
            thumbnail_url=hit.image_url or YOUTUBE_THUMBNAIL_TEMPLATE.format(video_id=video_id),
            embed_url=YOUTUBE_EMBED_TEMPLATE.format(video_id=video_id),
        )

    async def discover(self, topic: str, api_key: Optional[str]) -> Optional[DiscoveredVideo]:
        """Best-scoring candidate across the query set. Never raises."""
        if not api_key:
            logger.warning("Video discovery skipped | reason=no_search_key")
            return None

        try:
            candidates = await self._collect(topic, api_key)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Video discovery failed | topic={topic!r} error={e}")
            candidates = {}

        if self.metrics_collector:
            self.metrics_collector.record_discovery("videos", len(candidates))

        if not candidates:
            logger.info(f"Video discovery found nothing | topic={topic!r}")
            return None

        best = max(candidates.values(), key=lambda v: (v.relevance_score, v.views))
        logger.info(
            f"Video selected | id={best.video_id} score={best.relevance_score} views={best.views}"
        )
        return best

    async def _collect(self, topic: str, api_key: str) -> Dict[str, DiscoveredVideo]:
        candidates: Dict[str, DiscoveredVideo] = {}
        year = self._clock().year

        for index, template in enumerate(VIDEO_QUERY_TEMPLATES):
            if index > 0 and self.query_delay > 0:
                await self._sleep(self.query_delay)

            query = template.format(topic=topic, year=year)
            try:
                response = await self.search_client.videos(query, api_key, timeout=self.timeout)
            except DiscoveryError as e:
                logger.warning(f"Video query failed | query={query!r} error={e.message}")
                continue

            for hit in response.videos:
                candidate = self._candidate(hit, topic)
                if candidate is None or candidate.video_id in candidates:
                    continue
                candidates[candidate.video_id] = candidate

            good = sum(1 for v in candidates.values() if v.relevance_score >= VIDEO_GOOD_SCORE)
            if good >= VIDEO_GOOD_CANDIDATES_TO_STOP:
                break

        return candidates
