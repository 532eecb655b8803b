"""Tests for URL helpers."""

import pytest

from linkgraph.utils.urls import (
    classify_page_type,
    extract_host,
    is_http_url,
    normalize_segment,
    normalize_url,
    segment_similarity,
    url_pattern,
)


class TestUrlHelpers:
    """Tests for URL normalization and classification."""

    @pytest.mark.parametrize("url,expected", [
        ("https://example.com/a", True),
        ("http://example.com", True),
        ("ftp://example.com/file", False),
        ("mailto:someone@example.com", False),
        ("/relative/path", False),
        ("", False),
        (None, False),
    ])
    def test_is_http_url(self, url, expected):
        """Only absolute http(s) URLs are accepted."""
        assert is_http_url(url) is expected

    def test_normalize_url(self):
        """Scheme and host are lowercased, trailing slash dropped."""
        assert normalize_url("HTTPS://Example.COM/Blog/") == "https://example.com/Blog"
        assert normalize_url("https://example.com") == "https://example.com/"

    def test_extract_host_ignores_www(self):
        """www. prefix does not change the host."""
        assert extract_host("https://www.example.com/a") == extract_host("https://example.com/b")

    def test_normalize_segment_placeholders(self):
        """Numeric, UUID and date segments collapse to placeholders."""
        assert normalize_segment("123") == "{id}"
        assert normalize_segment("3f2b8c1e-9a4d-4e2f-8b1a-0c9d8e7f6a5b") == "{uuid}"
        assert normalize_segment("2024-01-31") == "{date}"
        assert normalize_segment("shoes") == "shoes"

    def test_url_pattern(self):
        """URLs cluster by normalized path."""
        assert url_pattern("https://example.com/blog/42") == "/blog/{id}"
        assert url_pattern("https://example.com/") == "/"

    def test_classify_page_type(self):
        """Page types are derived from the path."""
        assert classify_page_type("https://example.com/") == "homepage"
        assert classify_page_type("https://example.com/blog/post-1") == "blog"
        assert classify_page_type("https://example.com/product/shoe") == "product"
        assert classify_page_type("https://example.com/category/shoes") == "category"
        assert classify_page_type("https://example.com/tag/red") == "tag"
        assert classify_page_type("https://example.com/about-us") == "static"
        assert classify_page_type("https://example.com/misc/page") == "other"

    def test_segment_similarity(self):
        """Positional matches over the longer path."""
        assert segment_similarity("https://a.com/products/123", "https://a.com/products/124") == 1.0
        assert segment_similarity("https://a.com/a/b", "https://a.com/a/b/c") == pytest.approx(2 / 3)
        assert segment_similarity("https://a.com/a/b", "https://a.com/x/y") == 0.0
