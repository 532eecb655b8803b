"""
Sitemap Graph Reader

Turns a root sitemap URL into a flat, deduplicated URL inventory by
following sitemap indexes down to their urlsets. Failures of individual
documents are collected on the result and never abort the crawl.
"""

import asyncio
import gzip
import math
import xml.etree.ElementTree as ET
from collections import Counter, defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import timezone
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional, Union
from urllib.parse import urlparse

import httpx
import pydantic
from dateutil import parser as date_parser
from loguru import logger

from ..config import Settings, get_settings
from ..exceptions import HttpStatusError, LinkGraphError, NetworkError, ParseError, ValidationError
from ..models.health import LinkStatus
from ..models.sitemap import (
    ContentStructureAnalysis,
    PageTypeAnalysis,
    Severity,
    SitemapAnalysisResult,
    SitemapEntry,
    SitemapError,
    SitemapErrorType,
    SitemapStatistics,
    UrlPattern,
)
from ..schemas import SitemapUrlPayload
from ..utils.http import translate_error
from ..utils.retry import sitemap_policy
from ..utils.robots_checker import RobotsChecker
from ..utils.urls import CLEAN_SEGMENT, classify_page_type, is_http_url, path_segments, url_pattern
from .health_checker import LinkCheckOptions, LinkHealthChecker


GZIP_MAGIC = b"\x1f\x8b"
SITEMAP_ROOTS = ("urlset", "sitemapindex")

TOP_URL_PATTERNS = 20
PATTERN_EXAMPLES = 3
VALIDATION_SAMPLE_RATE = 0.1
VALIDATION_SAMPLE_MAX = 50


@dataclass
class SitemapReadOptions:
    """Per-call options for a crawl."""
    max_urls: int = 10000
    timeout: float = 30.0
    follow_index: bool = True
    max_depth: int = 5
    user_agent: str = "LinkGraphBot/1.0"
    respect_robots_txt: bool = True
    max_concurrent: int = 3
    batch_delay: float = 0.1
    validate_urls: bool = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "SitemapReadOptions":
        settings = settings or get_settings()
        values = dict(
            max_urls=settings.sitemap_max_urls,
            timeout=settings.sitemap_timeout_seconds,
            max_depth=settings.sitemap_max_depth,
            user_agent=settings.user_agent,
            max_concurrent=settings.sitemap_max_concurrent,
            batch_delay=settings.batch_delay_seconds,
        )
        values.update(overrides)
        return cls(**values)


@dataclass
class _Crawl:
    """Mutable state of one crawl."""
    options: SitemapReadOptions
    entries: list[SitemapEntry] = field(default_factory=list)
    errors: list[SitemapError] = field(default_factory=list)
    processed: list[str] = field(default_factory=list)
    visited: set[str] = field(default_factory=set)
    locations: set[str] = field(default_factory=set)
    truncated: bool = False
    saw_index: bool = False
    crawl_delay: float = 0.0

    @property
    def full(self) -> bool:
        return len(self.entries) >= self.options.max_urls

    @property
    def pause(self) -> float:
        """Delay between sibling batches; robots.txt Crawl-delay wins if longer."""
        return max(self.options.batch_delay, self.crawl_delay)

    def error(
        self,
        kind: SitemapErrorType,
        message: str,
        url: Optional[str] = None,
        severity: Severity = Severity.MEDIUM,
    ) -> None:
        logger.warning("Sitemap {} error for {}: {}", kind.value, url, message)
        self.errors.append(SitemapError(kind, message, url, severity))


# -----------------------------------------------------------------------------
# XML
# -----------------------------------------------------------------------------

def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    child = element.find(f"{{*}}{name}")
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def parse_document(content: bytes, url: Optional[str] = None) -> ET.Element:
    """Parse a sitemap document and check that its root is a known sitemap type.

    Raises:
        ParseError: On malformed XML or an unrecognised root element.
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ParseError(f"Invalid XML: {e}", url) from e
    name = _local_name(root.tag)
    if name not in SITEMAP_ROOTS:
        raise ParseError(f"Unrecognised sitemap root element <{name}>", url)
    return root


def _url_payload(element: ET.Element) -> dict:
    images = [
        {
            "loc": _child_text(image, "loc") or "",
            "caption": _child_text(image, "caption"),
            "title": _child_text(image, "title"),
            "license": _child_text(image, "license"),
        }
        for image in element.findall("{*}image")
    ]
    videos = [
        {
            "thumbnail_loc": _child_text(video, "thumbnail_loc") or "",
            "title": _child_text(video, "title") or "",
            "description": _child_text(video, "description") or "",
            "content_loc": _child_text(video, "content_loc"),
            "player_loc": _child_text(video, "player_loc"),
            "duration": _child_text(video, "duration"),
            "publication_date": _child_text(video, "publication_date"),
        }
        for video in element.findall("{*}video")
    ]
    return {
        "loc": _child_text(element, "loc") or "",
        "lastmod": _child_text(element, "lastmod"),
        "changefreq": _child_text(element, "changefreq"),
        "priority": _child_text(element, "priority"),
        "images": [image for image in images if image["loc"]],
        "videos": videos,
    }


# -----------------------------------------------------------------------------
# Statistics
# -----------------------------------------------------------------------------

def _parse_date(value: str):
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def build_statistics(entries: list[SitemapEntry]) -> SitemapStatistics:
    """Aggregate counts, priorities, lastmod range and URL patterns."""
    priorities = [e.priority for e in entries if e.priority is not None]
    frequencies = Counter(e.change_frequency.value for e in entries if e.change_frequency)

    dated = []
    for entry in entries:
        parsed = _parse_date(entry.last_modified) if entry.last_modified else None
        if parsed is not None:
            dated.append((parsed, entry.last_modified))
    last_modified_range = {"oldest": None, "newest": None}
    if dated:
        last_modified_range = {
            "oldest": min(dated, key=lambda pair: pair[0])[1],
            "newest": max(dated, key=lambda pair: pair[0])[1],
        }

    patterns: dict[str, UrlPattern] = {}
    for entry in entries:
        key = url_pattern(entry.location)
        pattern = patterns.setdefault(key, UrlPattern(pattern=key))
        pattern.count += 1
        if len(pattern.examples) < PATTERN_EXAMPLES:
            pattern.examples.append(entry.location)
    top_patterns = sorted(patterns.values(), key=lambda p: p.count, reverse=True)[:TOP_URL_PATTERNS]

    return SitemapStatistics(
        total_pages=len(entries),
        total_images=sum(len(e.images) for e in entries),
        total_videos=sum(len(e.videos) for e in entries),
        average_priority=round(sum(priorities) / len(priorities), 3) if priorities else 0.0,
        change_frequency_distribution=dict(frequencies),
        last_modified_range=last_modified_range,
        url_patterns=top_patterns,
    )


def _url_structure_points(url: str) -> int:
    points = 0
    if "?" not in url:
        points += 1
    if "#" not in url:
        points += 1
    if all(CLEAN_SEGMENT.match(segment) for segment in path_segments(url)):
        points += 2
    if len(urlparse(url).path) < 100:
        points += 1
    return points


def _seo_points(entry: SitemapEntry) -> int:
    return sum((
        entry.priority is not None,
        entry.change_frequency is not None,
        entry.last_modified is not None,
        bool(entry.images),
        bool(entry.videos),
    ))


def analyze_content_structure(entries: list[SitemapEntry]) -> ContentStructureAnalysis:
    """Page types, hierarchy depth and 0-100 structure/SEO scores."""
    if not entries:
        return ContentStructureAnalysis()

    grouped: dict[str, list[SitemapEntry]] = defaultdict(list)
    for entry in entries:
        grouped[classify_page_type(entry.location)].append(entry)

    page_types = []
    for page_type, members in grouped.items():
        priorities = [m.priority for m in members if m.priority is not None]
        page_types.append(PageTypeAnalysis(
            type=page_type,
            count=len(members),
            examples=[m.location for m in members[:PATTERN_EXAMPLES]],
            average_priority=round(sum(priorities) / len(priorities), 3) if priorities else 0.0,
        ))
    page_types.sort(key=lambda p: p.count, reverse=True)

    total = len(entries) * 5
    return ContentStructureAnalysis(
        page_types=page_types,
        hierarchy_depth=max(len(path_segments(e.location)) for e in entries),
        url_structure_score=round(min(100.0, sum(_url_structure_points(e.location) for e in entries) / total * 100), 1),
        seo_optimization_score=round(min(100.0, sum(_seo_points(e) for e in entries) / total * 100), 1),
    )


class SitemapGraphReader:
    """
    Recursive sitemap crawler.

    Sibling child sitemaps of an index are fetched concurrently in batches of
    ``max_concurrent`` and merged back in document order.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        health_checker: Optional[LinkHealthChecker] = None,
        robots_checker: Optional[RobotsChecker] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.health_checker = health_checker
        self.robots_checker = robots_checker
        self._sleep = sleep

    @asynccontextmanager
    async def _session(self, options: SitemapReadOptions) -> AsyncIterator[httpx.AsyncClient]:
        if self.client is not None:
            yield self.client
            return
        async with httpx.AsyncClient(
            headers={"User-Agent": options.user_agent},
            timeout=options.timeout,
            follow_redirects=True,
        ) as client:
            yield client

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def _download(self, client: httpx.AsyncClient, url: str, options: SitemapReadOptions) -> bytes:
        try:
            response = await client.get(
                url,
                headers={"User-Agent": options.user_agent},
                timeout=options.timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise translate_error(e, url) from e

        if response.status_code >= 400:
            raise HttpStatusError(f"HTTP {response.status_code} fetching sitemap", url, response.status_code)

        content = response.content
        if content[:2] == GZIP_MAGIC:
            try:
                content = gzip.decompress(content)
            except (OSError, EOFError) as e:
                raise ParseError(f"Invalid gzip payload: {e}", url) from e
        return content

    async def _load(
        self, client: httpx.AsyncClient, url: str, options: SitemapReadOptions
    ) -> Union[ET.Element, SitemapError]:
        """Fetch and parse one document; failures come back as a SitemapError."""
        policy = sitemap_policy()
        policy.sleep = self._sleep
        try:
            content = await policy.call(self._download, client, url, options)
        except (NetworkError, HttpStatusError) as e:
            return SitemapError(SitemapErrorType.NETWORK, str(e), url, Severity.HIGH)
        try:
            return parse_document(content, url)
        except ParseError as e:
            return SitemapError(SitemapErrorType.PARSING, str(e), url, Severity.HIGH)

    # -------------------------------------------------------------------------
    # Crawl
    # -------------------------------------------------------------------------

    async def _handle(
        self, client: httpx.AsyncClient, url: str, root: ET.Element, depth: int, crawl: _Crawl
    ) -> None:
        crawl.processed.append(url)
        if _local_name(root.tag) == "sitemapindex":
            crawl.saw_index = True
            children = []
            for sitemap in root.findall("{*}sitemap"):
                loc = _child_text(sitemap, "loc")
                if is_http_url(loc):
                    children.append(loc)
                else:
                    crawl.error(SitemapErrorType.VALIDATION, f"Invalid child sitemap URL: {loc}", url, Severity.LOW)
            logger.debug("Sitemap index {} lists {} child sitemaps", url, len(children))
            if crawl.options.follow_index:
                await self._follow(client, children, depth + 1, crawl)
        else:
            self._collect(root, url, crawl)

    async def _follow(self, client: httpx.AsyncClient, urls: list[str], depth: int, crawl: _Crawl) -> None:
        pending = []
        for url in urls:
            if url not in crawl.visited:
                crawl.visited.add(url)
                pending.append(url)
        if not pending:
            return
        if depth >= crawl.options.max_depth:
            crawl.error(
                SitemapErrorType.VALIDATION,
                f"Maximum sitemap depth {crawl.options.max_depth} reached; {len(pending)} sitemaps skipped",
                pending[0],
                Severity.LOW,
            )
            return

        batch_size = max(1, crawl.options.max_concurrent)
        for start in range(0, len(pending), batch_size):
            if crawl.full:
                crawl.truncated = True
                return
            if start > 0 and crawl.pause > 0:
                await self._sleep(crawl.pause)
            batch = pending[start:start + batch_size]
            documents = await asyncio.gather(*(self._load(client, url, crawl.options) for url in batch))
            for url, document in zip(batch, documents):
                if isinstance(document, SitemapError):
                    crawl.error(document.type, document.message, url, Severity.MEDIUM)
                    continue
                await self._handle(client, url, document, depth, crawl)

    def _collect(self, root: ET.Element, url: str, crawl: _Crawl) -> None:
        for element in root.findall("{*}url"):
            if crawl.full:
                crawl.truncated = True
                logger.info("Reached max_urls={} while reading {}", crawl.options.max_urls, url)
                return
            try:
                entry = SitemapUrlPayload.model_validate(_url_payload(element)).to_entry()
            except pydantic.ValidationError as e:
                crawl.error(
                    SitemapErrorType.VALIDATION,
                    f"Dropped invalid URL entry: {e.errors()[0]['msg']}",
                    url,
                    Severity.LOW,
                )
                continue
            if entry.location in crawl.locations:
                continue
            crawl.locations.add(entry.location)
            crawl.entries.append(entry)

    async def _check_robots(self, client: httpx.AsyncClient, url: str, crawl: _Crawl) -> None:
        checker = self.robots_checker or RobotsChecker(
            user_agent=crawl.options.user_agent, client=client, timeout=crawl.options.timeout
        )
        if not await checker.can_fetch(url):
            crawl.error(
                SitemapErrorType.ACCESSIBILITY,
                "Sitemap is disallowed by robots.txt",
                url,
                Severity.LOW,
            )
        delay = checker.get_crawl_delay(url)
        if delay:
            logger.info("Honouring robots.txt Crawl-delay of {}s for {}", delay, url)
            crawl.crawl_delay = delay

    async def _validate_sample(self, result: SitemapAnalysisResult, options: SitemapReadOptions) -> None:
        size = min(VALIDATION_SAMPLE_MAX, math.ceil(len(result.entries) * VALIDATION_SAMPLE_RATE))
        sample = [entry.location for entry in result.entries[:size]]
        if not sample:
            return
        checker = self.health_checker or LinkHealthChecker(client=self.client, settings=self.settings, sleep=self._sleep)
        checked = await checker.check_links(
            sample, LinkCheckOptions.from_settings(self.settings, user_agent=options.user_agent)
        )
        for record in checked.records:
            if record.status != LinkStatus.WORKING:
                detail = record.error or (f"HTTP {record.status_code}" if record.status_code else record.status.value)
                result.errors.append(SitemapError(
                    SitemapErrorType.ACCESSIBILITY,
                    f"URL is not accessible ({record.status.value}: {detail})",
                    record.url,
                    Severity.MEDIUM,
                ))

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def read_sitemap(
        self, url: str, options: Optional[SitemapReadOptions] = None
    ) -> SitemapAnalysisResult:
        """
        Crawl a sitemap (or sitemap index) into a flat URL inventory.

        Args:
            url: Root sitemap URL
            options: Per-call options, defaults from settings

        Returns:
            SitemapAnalysisResult; partial results plus errors on failure

        Raises:
            ValidationError: If ``url`` is not an absolute http(s) URL
        """
        if not is_http_url(url):
            raise ValidationError(f"Invalid sitemap URL: {url!r}", url)
        url = url.strip()
        options = options or SitemapReadOptions.from_settings(self.settings)
        crawl = _Crawl(options=options)

        logger.info("Reading sitemap {}", url)
        async with self._session(options) as client:
            if options.respect_robots_txt:
                await self._check_robots(client, url, crawl)

            crawl.visited.add(url)
            if options.max_depth <= 0:
                crawl.error(SitemapErrorType.VALIDATION, "max_depth must be at least 1", url, Severity.HIGH)
            else:
                document = await self._load(client, url, options)
                if isinstance(document, SitemapError):
                    crawl.errors.append(document)
                    logger.error("Failed to read sitemap {}: {}", url, document.message)
                else:
                    await self._handle(client, url, document, 0, crawl)

        result = SitemapAnalysisResult(
            sitemap_url=url,
            entries=crawl.entries,
            errors=crawl.errors,
            sitemap_type="sitemapindex" if crawl.saw_index else "urlset",
            sitemaps_processed=crawl.processed,
            truncated=crawl.truncated,
            statistics=build_statistics(crawl.entries),
            content_structure=analyze_content_structure(crawl.entries),
        )

        if options.validate_urls:
            await self._validate_sample(result, options)

        logger.info(
            "Sitemap {}: {} URLs from {} documents, {} errors{}",
            url,
            result.total_urls,
            len(result.sitemaps_processed),
            len(result.errors),
            " (truncated)" if result.truncated else "",
        )
        return result

    async def read_sitemaps(
        self, urls: Iterable[str], options: Optional[SitemapReadOptions] = None
    ) -> SitemapAnalysisResult:
        """Read several sitemaps and merge them into one inventory.

        Raises:
            LinkGraphError: If none of the sitemaps could be read
        """
        urls = list(dict.fromkeys(urls))
        options = options or SitemapReadOptions.from_settings(self.settings)
        merged = SitemapAnalysisResult(sitemap_url=urls[0] if urls else "", sitemap_type="mixed")
        seen: set[str] = set()
        succeeded = 0

        for url in urls:
            try:
                result = await self.read_sitemap(url, options)
            except ValidationError as e:
                merged.errors.append(SitemapError(SitemapErrorType.VALIDATION, str(e), url, Severity.HIGH))
                continue
            if result.sitemaps_processed:
                succeeded += 1
            merged.errors.extend(result.errors)
            merged.sitemaps_processed.extend(result.sitemaps_processed)
            merged.truncated = merged.truncated or result.truncated
            for entry in result.entries:
                if entry.location in seen:
                    continue
                if len(merged.entries) >= options.max_urls:
                    merged.truncated = True
                    break
                seen.add(entry.location)
                merged.entries.append(entry)

        if urls and not succeeded:
            raise LinkGraphError(f"None of the {len(urls)} sitemaps could be read")

        merged.statistics = build_statistics(merged.entries)
        merged.content_structure = analyze_content_structure(merged.entries)
        return merged

    async def extract_urls(self, url: str, options: Optional[SitemapReadOptions] = None) -> list[str]:
        """Return only the page URLs listed under ``url``."""
        result = await self.read_sitemap(url, options)
        return result.locations
