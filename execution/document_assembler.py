"""
Document Assembler
==================
Builds the publishable article body from a healed draft and the discovery
results:

    intro → video embed → <h2> sections → FAQ block → references block

Model-written <h1> tags are dropped (the CMS renders the title) and any FAQ
section the model wrote inline is replaced by the structured FAQ block.
"""

import re
from html import escape
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup, Tag
from loguru import logger

from config.constants import HIGH_AUTHORITY_BADGE_SCORE
from core.models import DiscoveredReference, DiscoveredVideo, FAQItem, ParsedDraft

SECTION_SPLIT_PATTERN = re.compile(r"(?=<h2[\s>])", re.IGNORECASE)
FAQ_HEADING_PATTERN = re.compile(r"\b(faq|faqs|frequently asked)\b", re.IGNORECASE)
MAX_REFERENCES_SHOWN = 10


def count_words(html: str) -> int:
    """Whitespace-delimited words of the visible text."""
    if not html:
        return 0
    text = BeautifulSoup(html, "html.parser").get_text(" ")
    return len(text.split())


def _strip_h1(soup: BeautifulSoup) -> None:
    for heading in soup.find_all("h1"):
        heading.decompose()


def _strip_inline_faq(soup: BeautifulSoup) -> None:
    """Remove a model-written FAQ <h2> and everything up to the next <h2>."""
    for heading in soup.find_all("h2"):
        if not FAQ_HEADING_PATTERN.search(heading.get_text(" ", strip=True)):
            continue
        sibling = heading.next_sibling
        while sibling is not None and not (isinstance(sibling, Tag) and sibling.name == "h2"):
            following = sibling.next_sibling
            sibling.extract()
            sibling = following
        heading.decompose()


def split_sections(html: str) -> tuple[str, List[str]]:
    """Split body HTML into (intro, [sections]) at each <h2>."""
    parts = SECTION_SPLIT_PATTERN.split(html)
    return parts[0], [part for part in parts[1:] if part.strip()]


def render_video(video: DiscoveredVideo) -> str:
    title = escape(video.title)
    caption = title if not video.channel else f"{title} &middot; {escape(video.channel)}"
    return (
        '<figure class="video-embed">'
        '<div class="video-wrapper">'
        f'<iframe src="{escape(video.embed_url, quote=True)}" title="{title}" loading="lazy" '
        'frameborder="0" allow="accelerometer; encrypted-media; gyroscope; picture-in-picture" '
        "allowfullscreen></iframe>"
        "</div>"
        f"<figcaption>{caption}</figcaption>"
        "</figure>"
    )


def render_faqs(faqs: Sequence[FAQItem]) -> str:
    if not faqs:
        return ""
    items = "".join(
        '<div class="faq-item" itemscope itemprop="mainEntity" itemtype="https://schema.org/Question">'
        f'<h3 itemprop="name">{escape(faq.question)}</h3>'
        '<div itemscope itemprop="acceptedAnswer" itemtype="https://schema.org/Answer">'
        f'<p itemprop="text">{escape(faq.answer)}</p>'
        "</div></div>"
        for faq in faqs
    )
    return (
        '<section class="faq-section" itemscope itemtype="https://schema.org/FAQPage">'
        f"<h2>Frequently Asked Questions</h2>{items}</section>"
    )


def render_references(references: Sequence[DiscoveredReference]) -> str:
    if not references:
        return ""
    rows = []
    for reference in references[:MAX_REFERENCES_SHOWN]:
        source = escape(reference.source)
        if reference.year:
            source = f"{source} ({reference.year})"
        badge = (
            '<span class="authority-badge">HIGH AUTHORITY</span>'
            if reference.authority_score >= HIGH_AUTHORITY_BADGE_SCORE
            else ""
        )
        rows.append(
            "<li>"
            f'<a href="{escape(reference.url, quote=True)}" target="_blank" rel="noopener noreferrer">'
            f"{escape(reference.title)}</a> "
            f'<span class="reference-source">{source}</span>{badge}'
            "</li>"
        )
    return (
        '<section class="references-section"><h2>References</h2>'
        f'<ol class="reference-list">{"".join(rows)}</ol></section>'
    )


class DocumentAssembler:
    """Composes the final article HTML."""

    def clean_body(self, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")
        _strip_h1(soup)
        _strip_inline_faq(soup)
        return str(soup).strip()

    def assemble(
        self,
        draft: ParsedDraft,
        references: Sequence[DiscoveredReference],
        video: Optional[DiscoveredVideo],
    ) -> str:
        body = self.clean_body(draft.html_content)
        intro, sections = split_sections(body)

        parts = [intro.strip()]
        if video is not None:
            parts.append(render_video(video))
        parts.extend(section.strip() for section in sections)
        parts.append(render_faqs(draft.faqs))
        parts.append(render_references(references))

        html = '<div class="article-content">' + "\n".join(p for p in parts if p) + "</div>"
        logger.debug(
            f"Document assembled | sections={len(sections)} faqs={len(draft.faqs)} "
            f"references={len(references)} video={video is not None}"
        )
        return html
