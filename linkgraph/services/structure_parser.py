"""
Content Structure Parser

Splits a markdown-ish document into heading-delimited sections and
blank-line separated paragraphs, recording exact character offsets and how
many more links each paragraph can take.
"""

import re
from typing import Any, Iterator, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from loguru import logger

from ..config import Settings, get_settings
from ..models.content import ContentDocument, ExtractedLink, Paragraph, Section
from ..schemas import parse_scraped_page


HEADING = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
CODE_FENCE = re.compile(r"^(```|~~~).*?(?:^\1[ \t]*$|\Z)", re.MULTILINE | re.DOTALL)
BLOCK = re.compile(r"[^\n]*\S[^\n]*(?:\n[^\n]*\S[^\n]*)*")
MARKDOWN_LINK = re.compile(r"(?<!!)\[([^\]]+)\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
HTML_TAG = re.compile(r"<[a-zA-Z/!][^>]*>")

IMPORTANT_TITLE_WORDS = ("introduction", "overview", "main", "key", "important", "primary")

DEFAULT_SECTION_TITLE = "Main Content"


def count_words(text: str) -> int:
    if HTML_TAG.search(text):
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    return len(text.split())


def count_links(text: str) -> int:
    """Count markdown links and HTML anchors in ``text``."""
    count = len(MARKDOWN_LINK.findall(text))
    if "<a" in text.lower():
        count += len(BeautifulSoup(text, "html.parser").find_all("a", href=True))
    return count


def section_importance(title: str, start_offset: int, length: int) -> float:
    """Earlier, longer and "key"-titled sections score higher; capped at 1.0."""
    score = 0.5
    score += max(0.0, 0.3 - start_offset / 10000)
    score += min(0.2, length / 5000)
    lowered = title.lower()
    if any(word in lowered for word in IMPORTANT_TITLE_WORDS):
        score += 0.2
    return round(min(1.0, score), 4)


class ContentStructureParser:
    """Pure, synchronous document parser."""

    def __init__(self, words_per_link: Optional[int] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.words_per_link = max(1, words_per_link or settings.words_per_link)

    def link_capacity(self, word_count: int, existing_links: int) -> int:
        return max(0, word_count // self.words_per_link - existing_links)

    def _paragraph(self, text: str, start: int, end: int, is_code: bool) -> Paragraph:
        body = text[start:end]
        if is_code:
            return Paragraph(body, start, end, word_count=len(body.split()), is_code=True)
        words = count_words(body)
        existing = count_links(body)
        return Paragraph(
            text=body,
            start_offset=start,
            end_offset=end,
            word_count=words,
            existing_link_count=existing,
            link_capacity=self.link_capacity(words, existing),
        )

    def _plain_blocks(self, text: str, start: int, end: int) -> Iterator[tuple[int, int, bool]]:
        for match in BLOCK.finditer(text, start, end):
            block = match.group()
            lead = len(block) - len(block.lstrip())
            yield match.start() + lead, match.start() + len(block.rstrip()), False

    def _blocks(
        self, text: str, start: int, end: int, fences: list[tuple[int, int]]
    ) -> Iterator[tuple[int, int, bool]]:
        cursor = start
        for fence_start, fence_end in fences:
            if fence_end <= start or fence_start >= end:
                continue
            yield from self._plain_blocks(text, cursor, max(cursor, fence_start))
            block_start, block_end = max(fence_start, start), min(fence_end, end)
            if text[block_start:block_end].strip():
                yield block_start, block_end, True
            cursor = block_end
        yield from self._plain_blocks(text, cursor, end)

    def _section(
        self,
        text: str,
        title: str,
        level: int,
        start: int,
        body_start: int,
        end: int,
        fences: list[tuple[int, int]],
    ) -> Section:
        paragraphs = [
            self._paragraph(text, block_start, block_end, is_code)
            for block_start, block_end, is_code in self._blocks(text, body_start, end, fences)
        ]
        return Section(
            title=title,
            level=level,
            start_offset=start,
            end_offset=end,
            importance=section_importance(title, start, end - start),
            paragraphs=paragraphs,
        )

    def parse_structure(self, text: str) -> ContentDocument:
        """
        Split ``text`` into sections and paragraphs.

        Text before the first heading becomes its own untitled section; a
        document without headings is a single "Main Content" section.
        Heading lines are never part of a paragraph, and fenced code blocks
        are single paragraphs with no link capacity.
        """
        text = text or ""
        fences = [(m.start(), m.end()) for m in CODE_FENCE.finditer(text)]
        headings = [
            m for m in HEADING.finditer(text)
            if not any(f_start <= m.start() < f_end for f_start, f_end in fences)
        ]

        sections: list[Section] = []
        if not headings:
            sections.append(self._section(text, DEFAULT_SECTION_TITLE, 0, 0, 0, len(text), fences))
        else:
            first = headings[0].start()
            if text[:first].strip():
                sections.append(self._section(text, "Section 1", 0, 0, 0, first, fences))
            for index, heading in enumerate(headings):
                end = headings[index + 1].start() if index + 1 < len(headings) else len(text)
                sections.append(self._section(
                    text,
                    heading.group(2).strip(),
                    len(heading.group(1)),
                    heading.start(),
                    heading.end(),
                    end,
                    fences,
                ))

        document = ContentDocument(text=text, sections=sections)
        logger.debug(
            "Parsed {} sections, {} paragraphs, {} words",
            len(sections),
            len(document.paragraphs),
            document.word_count,
        )
        return document

    def from_payload(self, payload: Any) -> ContentDocument:
        """Parse a scraped page payload (``url`` plus markdown/content/text body)."""
        page = parse_scraped_page(payload)
        document = self.parse_structure(page.body)
        document.url = page.url
        return document


def _line_starts(text: str) -> list[int]:
    starts = [0]
    for match in re.finditer(r"\n", text):
        starts.append(match.end())
    return starts


def extract_links(content: str, base_url: Optional[str] = None) -> list[ExtractedLink]:
    """
    Pull markdown and HTML links out of a document, in document order.

    Relative URLs are resolved against ``base_url`` when given; fragment-only
    and ``javascript:`` links are ignored.
    """
    links: list[ExtractedLink] = []

    def _resolve(href: str) -> Optional[str]:
        href = href.strip()
        if not href or href.startswith("#") or href.lower().startswith("javascript:"):
            return None
        return urljoin(base_url, href) if base_url else href

    for match in MARKDOWN_LINK.finditer(content):
        url = _resolve(match.group(2))
        if url:
            links.append(ExtractedLink(url, match.group(1).strip(), match.start(), "markdown"))

    if "<a" in content.lower():
        starts = _line_starts(content)
        soup = BeautifulSoup(content, "html.parser")
        for anchor in soup.find_all("a", href=True):
            url = _resolve(anchor["href"])
            if not url:
                continue
            offset = -1
            if anchor.sourceline is not None:
                offset = starts[anchor.sourceline - 1] + (anchor.sourcepos or 0)
            links.append(ExtractedLink(url, anchor.get_text(" ", strip=True), offset, "html"))

    links.sort(key=lambda link: link.start_offset)
    return links
