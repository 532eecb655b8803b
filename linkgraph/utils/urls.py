"""URL helpers shared by the sitemap reader and the replacement advisor."""

import re
from typing import Optional
from urllib.parse import urlparse

ID_SEGMENT = re.compile(r"^\d+$")
UUID_SEGMENT = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
DATE_SEGMENT = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CLEAN_SEGMENT = re.compile(r"^[A-Za-z0-9\-_]+$")

HTTP_SCHEMES = ("http", "https")


def is_http_url(url: Optional[str]) -> bool:
    """Return True for absolute http(s) URLs with a host."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in HTTP_SCHEMES and bool(parsed.netloc)


def normalize_url(url: str) -> str:
    """Normalize a URL for comparison."""
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/") or "/"
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}"


def extract_host(url: str) -> str:
    """Extract the host from a URL, ignoring a leading ``www.``."""
    host = urlparse(url).netloc.lower()
    return host[4:] if host.startswith("www.") else host


def path_segments(url: str) -> list[str]:
    """Return the non-empty path segments of ``url``."""
    return [segment for segment in urlparse(url).path.split("/") if segment]


def normalize_segment(segment: str) -> str:
    """Replace numeric, UUID and date segments with placeholders."""
    if ID_SEGMENT.match(segment):
        return "{id}"
    if UUID_SEGMENT.match(segment):
        return "{uuid}"
    if DATE_SEGMENT.match(segment):
        return "{date}"
    return segment


def url_pattern(url: str) -> str:
    """Cluster key for a URL, e.g. ``/blog/{id}`` for ``/blog/42``."""
    return "/" + "/".join(normalize_segment(s) for s in path_segments(url))


def classify_page_type(url: str) -> str:
    """Naive page-type classification from the URL path."""
    path = urlparse(url).path
    if path in ("", "/"):
        return "homepage"
    if "/blog/" in path or "/post/" in path:
        return "blog"
    if "/product/" in path or "/products/" in path or "/item/" in path:
        return "product"
    if "/category/" in path or "/cat/" in path:
        return "category"
    if "/tag/" in path:
        return "tag"
    if "/about" in path or "/contact" in path:
        return "static"
    return "other"


def segment_similarity(first: str, second: str) -> float:
    """Fraction of positionally matching normalized path segments.

    The denominator is the longer of the two paths, so ``/a/b`` vs ``/a/b/c``
    scores 2/3.
    """
    a = [normalize_segment(s.lower()) for s in path_segments(first)]
    b = [normalize_segment(s.lower()) for s in path_segments(second)]
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    matches = sum(1 for x, y in zip(a, b) if x == y)
    return matches / longest
