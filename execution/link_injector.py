"""
Link Injection Engine
=====================
Places a bounded number of contextual internal links into article HTML.

The article is parsed into a document tree; sections start at each <h2>
and content before the first <h2> (the intro) is never linked. Anchors are
phrases that already occur in a paragraph, located by the AnchorFinder, and
are wrapped in place inside a single text node, so links never land in
attributes, existing links or code.

Limits (all configurable):
- max_total links per article, max_per_section per <h2> section
- min_words_between consecutive links
- each target URL linked at most once

Architecture: Document tree traversal + Strategy cascade for anchors
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag
from loguru import logger

from config.constants import FILLER_WORDS, GENERIC_ANCHORS, LINK_RELEVANCE_SCORE, STOP_WORDS
from config.settings import LinkInjectionSettings
from core.models import LinkInjectionResult, LinkPlacement, LinkTarget

TOKEN_PATTERN = re.compile(r"[A-Za-z0-9]+(?:['’-][A-Za-z0-9]+)*")
LETTERS_PATTERN = re.compile(r"^[A-Za-z]{3,15}$")
SKIP_ANCESTORS = frozenset({"a", "pre", "code", "script", "style"})


# =============================================================================
# ANCHOR FINDER
# =============================================================================


@dataclass(frozen=True)
class Token:
    text: str
    start: int
    end: int

    @property
    def lower(self) -> str:
        return self.text.lower()


@dataclass(frozen=True)
class AnchorMatch:
    text: str
    start: int
    end: int


def tokenize(text: str) -> List[Token]:
    return [Token(m.group(0), m.start(), m.end()) for m in TOKEN_PATTERN.finditer(text)]


def _whitespace_joined(text: str, tokens: Sequence[Token], lo: int, hi: int) -> bool:
    """True when tokens lo..hi are separated by whitespace only."""
    for i in range(lo, hi):
        gap = text[tokens[i].end : tokens[i + 1].start]
        if not gap or not gap.isspace():
            return False
    return True


def keywords_from(text: Optional[str], min_length: int = 3) -> List[str]:
    """Meaningful lowercase words of a title or slug, in order."""
    if not text:
        return []
    words = re.split(r"[^a-z0-9]+", text.lower())
    return [
        w for w in words if len(w) >= min_length and w not in STOP_WORDS and w not in FILLER_WORDS
    ]


class AnchorFinder:
    """
    Chooses anchor text for a target inside a passage.

    Strategies, in priority order:
    1. Longest run (4 down to 2) of consecutive title keywords present verbatim
    2. A keyword of 5+ characters plus an adjacent plain word
    3. A keyword of 4+ characters plus the next word, or alone when 6+ long
    4. A slug word of 5+ characters

    Each seed span is widened with neighbouring words (never across
    punctuation) until it meets the length bounds. The result never starts or
    ends with a stop word and never contains a generic call-to-action phrase.
    An empty string means no acceptable anchor exists.
    """

    def __init__(self, limits: Optional[LinkInjectionSettings] = None):
        self.limits = limits or LinkInjectionSettings()

    def find(self, text: str, target: LinkTarget) -> str:
        match = self.find_match(text, target)
        return match.text if match else ""

    def find_match(self, text: str, target: LinkTarget) -> Optional[AnchorMatch]:
        tokens = tokenize(text)
        if not tokens:
            return None

        for span in self._seed_spans(text, tokens, target):
            match = self._fit(text, tokens, span)
            if match is not None:
                return match
        return None

    # -------------------------------------------------------------------------
    # Seeds
    # -------------------------------------------------------------------------

    def _seed_spans(
        self, text: str, tokens: Sequence[Token], target: LinkTarget
    ) -> Iterable[Tuple[int, int]]:
        title_words = keywords_from(target.title)
        lowered = [t.lower for t in tokens]

        def joined(lo: int, hi: int) -> bool:
            return _whitespace_joined(text, tokens, lo, hi)

        def plain(index: int) -> bool:
            word = tokens[index].text
            return bool(LETTERS_PATTERN.match(word)) and word.lower() not in STOP_WORDS

        # 1. keyword phrases
        for size in range(min(4, len(title_words)), 1, -1):
            for offset in range(len(title_words) - size + 1):
                phrase = title_words[offset : offset + size]
                for i in range(len(tokens) - size + 1):
                    if lowered[i : i + size] == phrase and joined(i, i + size - 1):
                        yield (i, i + size - 1)

        # 2. important keyword + adjacent word
        for word in (w for w in title_words if len(w) >= 5):
            for i, token in enumerate(lowered):
                if token != word:
                    continue
                if i + 1 < len(tokens) and plain(i + 1) and joined(i, i + 1):
                    yield (i, i + 1)
                if i > 0 and plain(i - 1) and joined(i - 1, i):
                    yield (i - 1, i)
                if len(word) >= 7:
                    yield (i, i)

        # 3. any keyword + next word
        for word in (w for w in title_words if len(w) >= 4):
            for i, token in enumerate(lowered):
                if token != word:
                    continue
                if i + 1 < len(tokens) and joined(i, i + 1):
                    yield (i, i + 1)
                if len(word) >= 6:
                    yield (i, i)

        # 4. slug words
        for word in (w for w in keywords_from(target.slug) if len(w) >= 5):
            for i, token in enumerate(lowered):
                if token == word:
                    yield (i, i)

    # -------------------------------------------------------------------------
    # Fitting
    # -------------------------------------------------------------------------

    def _fit(self, text: str, tokens: Sequence[Token], span: Tuple[int, int]) -> Optional[AnchorMatch]:
        """Smallest window containing span that satisfies every anchor rule."""
        limits = self.limits
        seed_lo, seed_hi = span
        seed_size = seed_hi - seed_lo + 1
        if seed_size > limits.max_anchor_words:
            return None

        for size in range(max(seed_size, limits.min_anchor_words), limits.max_anchor_words + 1):
            extra = size - seed_size
            # Prefer growing to the right
            for left in range(0, extra + 1):
                lo = seed_lo - left
                hi = seed_hi + (extra - left)
                if lo < 0 or hi >= len(tokens):
                    continue
                if not _whitespace_joined(text, tokens, lo, hi):
                    continue
                start, end = tokens[lo].start, tokens[hi].end
                candidate = AnchorMatch(text[start:end], start, end)
                if self._acceptable(candidate.text, tokens[lo], tokens[hi]):
                    return candidate
        return None

    def _acceptable(self, anchor: str, first: Token, last: Token) -> bool:
        limits = self.limits
        if not limits.min_anchor_chars <= len(anchor) <= limits.max_anchor_chars:
            return False
        if first.lower in STOP_WORDS or last.lower in STOP_WORDS:
            return False
        lowered = anchor.lower()
        return not any(phrase in lowered for phrase in GENERIC_ANCHORS)


def find_anchor(text: str, target: LinkTarget, limits: Optional[LinkInjectionSettings] = None) -> str:
    """Anchor text for target within text, or '' when none qualifies."""
    return AnchorFinder(limits).find(text, target)


# =============================================================================
# LINK INJECTOR
# =============================================================================


@dataclass
class _Paragraph:
    tag: Tag
    section: int
    position: int


def _has_skipped_ancestor(node) -> bool:
    return any(parent.name in SKIP_ANCESTORS for parent in node.parents if isinstance(parent, Tag))


class LinkInjector:
    """Inserts internal links into article HTML within configured limits."""

    def __init__(self, limits: Optional[LinkInjectionSettings] = None, metrics_collector=None):
        self.limits = limits or LinkInjectionSettings()
        self.anchor_finder = AnchorFinder(self.limits)
        self.metrics_collector = metrics_collector

    def select_targets(
        self, targets: Sequence[LinkTarget], current_url: Optional[str]
    ) -> List[LinkTarget]:
        """Usable, de-duplicated targets excluding the article's own URL."""
        selected: List[LinkTarget] = []
        seen = set()
        current = (current_url or "").rstrip("/")
        for target in targets:
            url = (target.url or "").strip()
            if not url or not (target.title or "").strip():
                continue
            if current and url.rstrip("/") == current:
                continue
            if url in seen:
                continue
            seen.add(url)
            selected.append(target)
            if len(selected) >= self.limits.candidate_pool:
                break
        return selected

    def inject(
        self,
        html: str,
        targets: Sequence[LinkTarget],
        current_url: Optional[str] = None,
    ) -> LinkInjectionResult:
        candidates = self.select_targets(targets, current_url)
        if not html or not candidates or self.limits.max_total == 0:
            return LinkInjectionResult(html=html, placements=[])

        soup = BeautifulSoup(html, "html.parser")
        used_urls = {a.get("href") for a in soup.find_all("a") if a.get("href")}
        placements: List[LinkPlacement] = []
        per_section: dict[int, int] = {}
        target_cursor = 0

        for paragraph in self._paragraphs(soup):
            if len(placements) >= self.limits.max_total:
                break
            if paragraph.section == 0:
                continue
            if per_section.get(paragraph.section, 0) >= self.limits.max_per_section:
                continue
            if len(paragraph.tag.get_text(" ", strip=True)) < self.limits.min_paragraph_chars:
                continue
            if placements and paragraph.position - placements[-1].position < self.limits.min_words_between:
                continue

            placement = self._link_paragraph(soup, paragraph, candidates, target_cursor, used_urls)
            target_cursor += 1
            if placement is None:
                continue

            placements.append(placement)
            used_urls.add(placement.url)
            per_section[paragraph.section] = per_section.get(paragraph.section, 0) + 1

        if self.metrics_collector:
            self.metrics_collector.record_links_injected(len(placements))
        logger.info(f"Internal links injected | count={len(placements)} candidates={len(candidates)}")

        return LinkInjectionResult(html=str(soup) if placements else html, placements=placements)

    def _paragraphs(self, soup: BeautifulSoup) -> List[_Paragraph]:
        """Paragraphs in document order with their section index and word offset."""
        paragraphs: List[_Paragraph] = []
        section = 0
        words_seen = 0
        for node in soup.descendants:
            if isinstance(node, Tag):
                if node.name == "h2":
                    section += 1
                elif node.name == "p" and not _has_skipped_ancestor(node):
                    paragraphs.append(_Paragraph(tag=node, section=section, position=words_seen))
            elif isinstance(node, NavigableString) and type(node) is NavigableString:
                words_seen += len(node.split())
        return paragraphs

    def _link_paragraph(
        self,
        soup: BeautifulSoup,
        paragraph: _Paragraph,
        candidates: Sequence[LinkTarget],
        cursor: int,
        used_urls: set,
    ) -> Optional[LinkPlacement]:
        attempts = min(self.limits.targets_per_paragraph, len(candidates))
        for offset in range(attempts):
            target = candidates[(cursor + offset) % len(candidates)]
            if target.url in used_urls:
                continue
            for text_node in self._text_nodes(paragraph.tag):
                match = self.anchor_finder.find_match(str(text_node), target)
                if match is None:
                    continue
                self._wrap(soup, text_node, match, target)
                return LinkPlacement(
                    url=target.url,
                    anchor_text=match.text,
                    position=paragraph.position,
                    relevance_score=LINK_RELEVANCE_SCORE,
                )
        return None

    @staticmethod
    def _text_nodes(tag: Tag) -> List[NavigableString]:
        return [
            node
            for node in tag.find_all(string=True)
            if type(node) is NavigableString and node.strip() and not _has_skipped_ancestor(node)
        ]

    @staticmethod
    def _wrap(soup: BeautifulSoup, node: NavigableString, match: AnchorMatch, target: LinkTarget) -> None:
        text = str(node)
        link = soup.new_tag("a", href=target.url, title=target.title)
        link.string = match.text
        pieces = []
        if match.start > 0:
            pieces.append(NavigableString(text[: match.start]))
        pieces.append(link)
        if match.end < len(text):
            pieces.append(NavigableString(text[match.end :]))
        node.replace_with(*pieces)
