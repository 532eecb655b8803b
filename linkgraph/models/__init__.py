"""Data models for the link graph engine."""

from .content import ContentDocument, ExtractedLink, Paragraph, Section
from .health import (
    HealthTransition,
    LinkAnalysisResult,
    LinkHealthRecord,
    LinkStatus,
    MonitorReport,
)
from .placement import (
    AnchorTextClass,
    CandidateLink,
    DistributionResult,
    DistributionStatistics,
    PlacementDecision,
    PlacementSkip,
    Replacement,
)
from .sitemap import (
    ChangeFrequency,
    ContentStructureAnalysis,
    PageTypeAnalysis,
    Severity,
    SitemapAnalysisResult,
    SitemapEntry,
    SitemapError,
    SitemapErrorType,
    SitemapImage,
    SitemapStatistics,
    SitemapVideo,
    UrlPattern,
)

__all__ = [
    "ContentDocument", "ExtractedLink", "Paragraph", "Section",
    "HealthTransition", "LinkAnalysisResult", "LinkHealthRecord", "LinkStatus", "MonitorReport",
    "AnchorTextClass", "CandidateLink", "DistributionResult", "DistributionStatistics",
    "PlacementDecision", "PlacementSkip", "Replacement",
    "ChangeFrequency", "ContentStructureAnalysis", "PageTypeAnalysis", "Severity",
    "SitemapAnalysisResult", "SitemapEntry", "SitemapError", "SitemapErrorType",
    "SitemapImage", "SitemapStatistics", "SitemapVideo", "UrlPattern",
]
