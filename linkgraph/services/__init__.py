"""Link graph services."""

from .health_checker import LinkCheckOptions, LinkHealthChecker
from .placement_planner import LinkPlacementPlanner, PlacementOptions, ScoreWeights
from .replacement_advisor import ReplacementAdvisor
from .sitemap_reader import SitemapGraphReader, SitemapReadOptions
from .structure_parser import ContentStructureParser, extract_links

__all__ = [
    "LinkCheckOptions",
    "LinkHealthChecker",
    "LinkPlacementPlanner",
    "PlacementOptions",
    "ScoreWeights",
    "ReplacementAdvisor",
    "SitemapGraphReader",
    "SitemapReadOptions",
    "ContentStructureParser",
    "extract_links",
]
