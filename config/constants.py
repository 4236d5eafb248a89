"""
System Constants & Invariants
==============================
Immutable domain constants: provider endpoints, source authority tiers,
linking vocabulary and video URL patterns.

Architecture: Value Objects + Namespace Organization
"""

import re
from dataclasses import dataclass, field
from typing import Final

# =============================================================================
# PROVIDER ENDPOINTS & DEFAULT MODELS
# =============================================================================


@dataclass(frozen=True)
class ProviderEndpoints:
    """Base URLs of the supported generation backends."""

    GEMINI: str = "https://generativelanguage.googleapis.com/v1beta"
    OPENROUTER: str = "https://openrouter.ai/api/v1"
    OPENAI: str = "https://api.openai.com/v1"
    ANTHROPIC: str = "https://api.anthropic.com"
    GROQ: str = "https://api.groq.com/openai/v1"


PROVIDER_ENDPOINTS: Final = ProviderEndpoints()

DEFAULT_MODELS: Final[dict[str, str]] = {
    "gemini": "gemini-2.5-flash",
    "openrouter": "anthropic/claude-sonnet-4",
    "openai": "gpt-4o",
    "anthropic": "claude-sonnet-4-20250514",
    "groq": "llama-3.3-70b-versatile",
}

# Groq rejects larger max_tokens values for its hosted models
GROQ_MAX_OUTPUT_TOKENS: Final[int] = 8000
ANTHROPIC_API_VERSION: Final[str] = "2023-06-01"


# =============================================================================
# SOURCE AUTHORITY
# =============================================================================


@dataclass(frozen=True)
class AuthorityTier:
    """A named group of domains sharing one authority score."""

    name: str
    score: int
    domains: tuple[str, ...] = field(default_factory=tuple)


# Checked in order; the first tier with a matching domain wins.
AUTHORITY_TIERS: Final[tuple[AuthorityTier, ...]] = (
    AuthorityTier("government", 95, (".gov", ".gov.uk", ".edu")),
    AuthorityTier(
        "scientific",
        88,
        (
            "nature.com",
            "science.org",
            "pubmed.gov",
            "ncbi.nlm.nih.gov",
            "nih.gov",
            "cdc.gov",
            "who.int",
            "mayoclinic.org",
        ),
    ),
    AuthorityTier(
        "major_news",
        82,
        (
            "reuters.com",
            "bbc.com",
            "bbc.co.uk",
            "nytimes.com",
            "washingtonpost.com",
            "theguardian.com",
            "wsj.com",
            "bloomberg.com",
            "forbes.com",
        ),
    ),
    AuthorityTier(
        "tech_press",
        75,
        ("techcrunch.com", "wired.com", "arstechnica.com", "theverge.com", "hbr.org"),
    ),
    AuthorityTier(
        "reference",
        72,
        ("wikipedia.org", "britannica.com", "investopedia.com", "statista.com"),
    ),
)

HTTPS_DEFAULT_AUTHORITY: Final[int] = 50
HTTP_DEFAULT_AUTHORITY: Final[int] = 30
HIGH_AUTHORITY_BADGE_SCORE: Final[int] = 80

BLOCKED_REFERENCE_DOMAINS: Final[frozenset[str]] = frozenset(
    {
        "facebook.com",
        "twitter.com",
        "x.com",
        "instagram.com",
        "youtube.com",
        "pinterest.com",
        "reddit.com",
        "quora.com",
        "linkedin.com",
        "medium.com",
        "tiktok.com",
    }
)

SOURCE_DISPLAY_NAMES: Final[dict[str, str]] = {
    "nytimes.com": "The New York Times",
    "washingtonpost.com": "The Washington Post",
    "theguardian.com": "The Guardian",
    "wsj.com": "The Wall Street Journal",
    "bbc.com": "BBC",
    "bbc.co.uk": "BBC",
    "reuters.com": "Reuters",
    "bloomberg.com": "Bloomberg",
    "forbes.com": "Forbes",
    "techcrunch.com": "TechCrunch",
    "wired.com": "Wired",
    "arstechnica.com": "Ars Technica",
    "theverge.com": "The Verge",
    "hbr.org": "Harvard Business Review",
    "nature.com": "Nature",
    "science.org": "Science",
    "ncbi.nlm.nih.gov": "NCBI",
    "nih.gov": "National Institutes of Health",
    "cdc.gov": "CDC",
    "who.int": "World Health Organization",
    "mayoclinic.org": "Mayo Clinic",
    "wikipedia.org": "Wikipedia",
    "britannica.com": "Britannica",
    "investopedia.com": "Investopedia",
    "statista.com": "Statista",
}

REFERENCE_QUERY_TEMPLATES: Final[tuple[str, ...]] = (
    "{topic} research study statistics",
    "{topic} expert guide official",
    "{topic} site:edu OR site:gov",
)

YEAR_PATTERN: Final = re.compile(r"\b(20[0-2][0-9])\b")
FAVICON_URL_TEMPLATE: Final[str] = "https://www.google.com/s2/favicons?domain={domain}&sz=32"


# =============================================================================
# VIDEO DISCOVERY
# =============================================================================

VIDEO_QUERY_TEMPLATES: Final[tuple[str, ...]] = (
    "{topic} tutorial guide",
    "{topic} explained {year}",
    "{topic} how to",
)

VIDEO_ID_PATTERNS: Final[tuple[re.Pattern, ...]] = (
    re.compile(r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/)([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([A-Za-z0-9_-]{11})"),
)

VIEW_MULTIPLIERS: Final[dict[str, int]] = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}

# (minimum views, score bonus), highest tier first
VIEW_BONUS_TIERS: Final[tuple[tuple[int, int], ...]] = (
    (1_000_000, 15),
    (100_000, 10),
    (50_000, 5),
)

VIDEO_BASE_RELEVANCE: Final[int] = 50
VIDEO_MAX_OVERLAP_BONUS: Final[int] = 30
VIDEO_GOOD_SCORE: Final[int] = 60
VIDEO_GOOD_CANDIDATES_TO_STOP: Final[int] = 3

YOUTUBE_EMBED_TEMPLATE: Final[str] = "https://www.youtube.com/embed/{video_id}"
YOUTUBE_THUMBNAIL_TEMPLATE: Final[str] = "https://img.youtube.com/vi/{video_id}/hqdefault.jpg"
YOUTUBE_DOMAINS: Final[tuple[str, ...]] = ("youtube.com", "youtu.be")


# =============================================================================
# LINKING VOCABULARY
# =============================================================================

STOP_WORDS: Final[frozenset[str]] = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "if", "then", "so", "of", "to", "in",
        "on", "at", "by", "for", "with", "from", "as", "into", "about", "over",
        "is", "are", "was", "were", "be", "been", "being", "it", "its", "this",
        "that", "these", "those", "your", "you", "our", "we", "they", "their",
        "how", "what", "why", "when", "where", "which", "who", "can", "will",
        "do", "does", "not", "no", "all", "any", "more", "most", "vs", "than",
    }
)

# Title words that carry no topical meaning for anchors
FILLER_WORDS: Final[frozenset[str]] = frozenset(
    {
        "best", "top", "guide", "complete", "ultimate", "way", "ways", "tips",
        "step", "steps", "make", "get", "use", "using", "new", "first",
    }
)

GENERIC_ANCHORS: Final[tuple[str, ...]] = (
    "click here",
    "read more",
    "learn more",
    "check out",
    "find out",
    "this article",
    "this post",
    "this guide",
    "click this",
    "see here",
)

LINK_RELEVANCE_SCORE: Final[float] = 0.9


# =============================================================================
# PROMPTING
# =============================================================================

SYSTEM_PROMPT: Final[str] = (
    "You are an elite content creator. Never sound formal or robotic. "
    "Respond with a single JSON object and nothing else."
)

BANNED_PHRASES: Final[tuple[str, ...]] = (
    "in today's digital age",
    "in this article",
    "delve into",
    "it's important to note",
    "in conclusion",
    "game-changer",
    "unlock the power",
    "navigating the landscape",
)

REQUIRED_DRAFT_FIELD: Final[str] = "htmlContent"
