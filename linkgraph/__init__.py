"""Link graph maintenance and internal-link placement engine."""

from .config import Settings, configure_logging, get_settings
from .exceptions import HttpStatusError, LinkGraphError, NetworkError, ParseError, ValidationError
from .services import (
    ContentStructureParser,
    LinkCheckOptions,
    LinkHealthChecker,
    LinkPlacementPlanner,
    PlacementOptions,
    ReplacementAdvisor,
    SitemapGraphReader,
    SitemapReadOptions,
    extract_links,
)
from .utils import InMemoryHealthCache, RetryPolicy, SqlHealthCache

__version__ = "1.0.0"

__all__ = [
    "Settings",
    "configure_logging",
    "get_settings",
    "HttpStatusError",
    "LinkGraphError",
    "NetworkError",
    "ParseError",
    "ValidationError",
    "ContentStructureParser",
    "LinkCheckOptions",
    "LinkHealthChecker",
    "LinkPlacementPlanner",
    "PlacementOptions",
    "ReplacementAdvisor",
    "SitemapGraphReader",
    "SitemapReadOptions",
    "extract_links",
    "InMemoryHealthCache",
    "RetryPolicy",
    "SqlHealthCache",
]
