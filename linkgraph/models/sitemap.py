"""Sitemap inventory models."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ChangeFrequency(str, Enum):
    """Values allowed in a sitemap ``<changefreq>``."""
    ALWAYS = "always"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    NEVER = "never"


class SitemapErrorType(str, Enum):
    NETWORK = "network"
    PARSING = "parsing"
    VALIDATION = "validation"
    ACCESSIBILITY = "accessibility"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class SitemapImage:
    loc: str
    caption: Optional[str] = None
    title: Optional[str] = None
    license: Optional[str] = None


@dataclass(frozen=True)
class SitemapVideo:
    thumbnail_loc: str
    title: str
    description: str
    content_loc: Optional[str] = None
    player_loc: Optional[str] = None
    duration: Optional[int] = None
    publication_date: Optional[str] = None


@dataclass(frozen=True)
class SitemapEntry:
    """One page listed in a ``<urlset>``."""
    location: str
    last_modified: Optional[str] = None
    change_frequency: Optional[ChangeFrequency] = None
    priority: Optional[float] = None
    images: tuple[SitemapImage, ...] = ()
    videos: tuple[SitemapVideo, ...] = ()

    def to_dict(self) -> dict:
        data = asdict(self)
        data["change_frequency"] = self.change_frequency.value if self.change_frequency else None
        data["images"] = [asdict(image) for image in self.images]
        data["videos"] = [asdict(video) for video in self.videos]
        return data


@dataclass(frozen=True)
class SitemapError:
    """A failure collected during a crawl; never raised."""
    type: SitemapErrorType
    message: str
    url: Optional[str] = None
    severity: Severity = Severity.MEDIUM

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "url": self.url,
            "severity": self.severity.value,
        }


@dataclass
class UrlPattern:
    pattern: str
    count: int = 0
    examples: list[str] = field(default_factory=list)


@dataclass
class PageTypeAnalysis:
    type: str
    count: int = 0
    examples: list[str] = field(default_factory=list)
    average_priority: float = 0.0


@dataclass
class SitemapStatistics:
    total_pages: int = 0
    total_images: int = 0
    total_videos: int = 0
    average_priority: float = 0.0
    change_frequency_distribution: dict[str, int] = field(default_factory=dict)
    last_modified_range: dict[str, Optional[str]] = field(default_factory=dict)
    url_patterns: list[UrlPattern] = field(default_factory=list)


@dataclass
class ContentStructureAnalysis:
    page_types: list[PageTypeAnalysis] = field(default_factory=list)
    hierarchy_depth: int = 0
    url_structure_score: float = 0.0
    seo_optimization_score: float = 0.0


@dataclass
class SitemapAnalysisResult:
    """Flat URL inventory for a site plus crawl diagnostics."""
    sitemap_url: str
    entries: list[SitemapEntry] = field(default_factory=list)
    errors: list[SitemapError] = field(default_factory=list)
    sitemap_type: str = "urlset"
    sitemaps_processed: list[str] = field(default_factory=list)
    truncated: bool = False
    statistics: SitemapStatistics = field(default_factory=SitemapStatistics)
    content_structure: ContentStructureAnalysis = field(default_factory=ContentStructureAnalysis)
    analyzed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def total_urls(self) -> int:
        return len(self.entries)

    @property
    def locations(self) -> list[str]:
        return [entry.location for entry in self.entries]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sitemap_url": self.sitemap_url,
            "entries": [entry.to_dict() for entry in self.entries],
            "total_urls": self.total_urls,
            "sitemap_type": self.sitemap_type,
            "errors": [error.to_dict() for error in self.errors],
            "sitemaps_processed": list(self.sitemaps_processed),
            "truncated": self.truncated,
            "statistics": asdict(self.statistics),
            "content_structure": asdict(self.content_structure),
            "analyzed_at": self.analyzed_at.isoformat(),
        }
