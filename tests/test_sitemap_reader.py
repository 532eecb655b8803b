"""Tests for the sitemap graph reader."""

import gzip

import httpx
import pytest

from linkgraph.exceptions import LinkGraphError, ValidationError
from linkgraph.models.sitemap import ChangeFrequency, Severity, SitemapErrorType
from linkgraph.services.sitemap_reader import (
    SitemapGraphReader,
    SitemapReadOptions,
    analyze_content_structure,
    build_statistics,
)

from .conftest import make_client


SITE = "https://shop.example"


def urlset(*paths, extra=""):
    urls = "".join(f"<url><loc>{SITE}{path}</loc>{extra}</url>" for path in paths)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{urls}</urlset>"
    )


def sitemapindex(*locs):
    sitemaps = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locs)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{sitemaps}</sitemapindex>"
    )


def site(documents, robots=None):
    """Handler serving ``documents`` by path; everything else is 404."""
    requests = []

    def handler(request):
        requests.append(request)
        path = request.url.path
        if path == "/robots.txt":
            return httpx.Response(200, text=robots) if robots else httpx.Response(404)
        body = documents.get(path)
        if body is None:
            return httpx.Response(404)
        if callable(body):
            return body(request)
        if isinstance(body, bytes):
            return httpx.Response(200, content=body)
        return httpx.Response(200, text=body, headers={"Content-Type": "application/xml"})

    handler.requests = requests
    return handler


def options(**overrides):
    values = dict(batch_delay=0)
    values.update(overrides)
    return SitemapReadOptions(**values)


class TestReadSitemap:
    """Tests for SitemapGraphReader.read_sitemap."""

    async def test_index_with_two_children(self, no_sleep):
        """Two child sitemaps with three URLs each give six entries."""
        handler = site({
            "/sitemap.xml": sitemapindex(f"{SITE}/sitemap-1.xml", f"{SITE}/sitemap-2.xml"),
            "/sitemap-1.xml": urlset("/a", "/b", "/c"),
            "/sitemap-2.xml": urlset("/d", "/e", "/f"),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())

        assert result.total_urls == 6
        assert result.locations == [f"{SITE}/{p}" for p in "abcdef"]
        assert result.sitemap_type == "sitemapindex"
        assert result.sitemaps_processed == [
            f"{SITE}/sitemap.xml", f"{SITE}/sitemap-1.xml", f"{SITE}/sitemap-2.xml"
        ]
        assert result.errors == []

    async def test_duplicate_locations_are_merged(self, no_sleep):
        """A page listed in two child sitemaps appears once."""
        handler = site({
            "/sitemap.xml": sitemapindex(f"{SITE}/one.xml", f"{SITE}/two.xml"),
            "/one.xml": urlset("/a", "/b"),
            "/two.xml": urlset("/b", "/c"),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())

        assert result.locations == [f"{SITE}/a", f"{SITE}/b", f"{SITE}/c"]
        assert len(set(result.locations)) == result.total_urls

    async def test_nested_indexes_within_depth(self, no_sleep):
        """Indexes of indexes are followed down to their urlsets."""
        handler = site({
            "/sitemap.xml": sitemapindex(f"{SITE}/nested.xml"),
            "/nested.xml": sitemapindex(f"{SITE}/leaf.xml"),
            "/leaf.xml": urlset("/deep"),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options(max_depth=3))

        assert result.locations == [f"{SITE}/deep"]

    async def test_max_depth_stops_recursion(self, no_sleep):
        """Children beyond max_depth are not fetched."""
        handler = site({
            "/sitemap.xml": sitemapindex(f"{SITE}/child.xml"),
            "/child.xml": urlset("/a"),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(
            f"{SITE}/sitemap.xml", options(max_depth=1, respect_robots_txt=False)
        )

        assert result.total_urls == 0
        assert [r.url.path for r in handler.requests] == ["/sitemap.xml"]
        assert result.errors[0].type == SitemapErrorType.VALIDATION
        assert "depth" in result.errors[0].message

    async def test_self_referencing_index_terminates(self, no_sleep):
        """Sitemap cycles are fetched once."""
        handler = site({
            "/sitemap.xml": sitemapindex(f"{SITE}/sitemap.xml", f"{SITE}/leaf.xml"),
            "/leaf.xml": urlset("/a"),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options(respect_robots_txt=False))

        assert result.locations == [f"{SITE}/a"]
        assert [r.url.path for r in handler.requests].count("/sitemap.xml") == 1

    async def test_max_urls_truncates(self, no_sleep):
        """Collection stops at max_urls without an error."""
        handler = site({"/sitemap.xml": urlset("/a", "/b", "/c", "/d", "/e", "/f")})
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options(max_urls=4))

        assert result.total_urls == 4
        assert result.truncated is True
        assert result.errors == []

    async def test_follow_index_disabled(self, no_sleep):
        """With follow_index off only the index itself is read."""
        handler = site({
            "/sitemap.xml": sitemapindex(f"{SITE}/child.xml"),
            "/child.xml": urlset("/a"),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options(follow_index=False))

        assert result.total_urls == 0
        assert result.sitemaps_processed == [f"{SITE}/sitemap.xml"]

    @pytest.mark.parametrize("url", ["ftp://shop.example/sitemap.xml", "not a url", ""])
    async def test_invalid_root_url_raises(self, url, no_sleep):
        """Only a bad top-level URL reaches the caller as an exception."""
        reader = SitemapGraphReader(client=make_client(site({})), sleep=no_sleep)
        with pytest.raises(ValidationError):
            await reader.read_sitemap(url, options())

    async def test_failing_child_is_collected(self, no_sleep):
        """A child that keeps failing is retried, recorded and skipped."""
        calls = []

        def broken(request):
            calls.append(request)
            return httpx.Response(503)

        handler = site({
            "/sitemap.xml": sitemapindex(f"{SITE}/bad.xml", f"{SITE}/good.xml"),
            "/bad.xml": broken,
            "/good.xml": urlset("/a", "/b"),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options(respect_robots_txt=False))

        assert result.total_urls == 2
        assert len(calls) == 3
        assert no_sleep.calls == [1.0, 2.0]
        assert len(result.errors) == 1
        assert result.errors[0].type == SitemapErrorType.NETWORK
        assert result.errors[0].url == f"{SITE}/bad.xml"

    async def test_missing_child_is_not_retried(self, no_sleep):
        """A 404 child sitemap fails on the first attempt."""
        handler = site({"/sitemap.xml": sitemapindex(f"{SITE}/gone.xml")})
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options(respect_robots_txt=False))

        assert [r.url.path for r in handler.requests].count("/gone.xml") == 1
        assert "404" in result.errors[0].message

    async def test_unreachable_root_returns_empty_result(self, no_sleep):
        """Network failure of the root is reported, not raised."""
        def handler(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options(respect_robots_txt=False))

        assert result.total_urls == 0
        assert result.errors[0].type == SitemapErrorType.NETWORK
        assert result.errors[0].severity == Severity.HIGH

    async def test_malformed_xml_is_a_parsing_error(self, no_sleep):
        """Broken XML in one child does not stop the others."""
        handler = site({
            "/sitemap.xml": sitemapindex(f"{SITE}/bad.xml", f"{SITE}/good.xml"),
            "/bad.xml": "<urlset><url><loc>oops",
            "/good.xml": urlset("/a"),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())

        assert result.locations == [f"{SITE}/a"]
        assert result.errors[0].type == SitemapErrorType.PARSING

    async def test_unknown_root_element(self, no_sleep):
        """Non-sitemap XML is rejected."""
        handler = site({"/sitemap.xml": "<rss><channel/></rss>"})
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())

        assert result.errors[0].type == SitemapErrorType.PARSING
        assert "rss" in result.errors[0].message

    async def test_gzipped_sitemap(self, no_sleep):
        """Gzip payloads are decompressed."""
        handler = site({
            "/sitemap.xml": sitemapindex(f"{SITE}/pages.xml.gz"),
            "/pages.xml.gz": gzip.compress(urlset("/a", "/b").encode("utf-8")),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())

        assert result.locations == [f"{SITE}/a", f"{SITE}/b"]

    async def test_invalid_entries_dropped(self, no_sleep):
        """Entries with a bad loc are dropped as low-severity validation errors."""
        body = urlset("/a").replace(
            "</urlset>", "<url><loc>mailto:x@shop.example</loc></url><url></url></urlset>"
        )
        handler = site({"/sitemap.xml": body})
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())

        assert result.locations == [f"{SITE}/a"]
        assert len(result.errors) == 2
        assert all(e.type == SitemapErrorType.VALIDATION for e in result.errors)
        assert all(e.severity == Severity.LOW for e in result.errors)

    async def test_images_and_videos(self, no_sleep):
        """Image and video extensions are read into the entry."""
        body = (
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9" '
            'xmlns:image="http://www.google.com/schemas/sitemap-image/1.1" '
            'xmlns:video="http://www.google.com/schemas/sitemap-video/1.1">'
            f"<url><loc>{SITE}/p</loc><lastmod>2024-02-01</lastmod>"
            "<changefreq>daily</changefreq><priority>0.7</priority>"
            f"<image:image><image:loc>{SITE}/i.png</image:loc><image:title>Pic</image:title></image:image>"
            "<video:video><video:thumbnail_loc>https://cdn.example/t.jpg</video:thumbnail_loc>"
            "<video:title>Clip</video:title><video:description>A clip</video:description>"
            "<video:duration>60</video:duration></video:video>"
            "</url></urlset>"
        )
        handler = site({"/sitemap.xml": body})
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())

        entry = result.entries[0]
        assert entry.change_frequency == ChangeFrequency.DAILY
        assert entry.priority == 0.7
        assert entry.images[0].loc == f"{SITE}/i.png"
        assert entry.images[0].title == "Pic"
        assert entry.videos[0].title == "Clip"
        assert entry.videos[0].duration == 60
        assert result.statistics.total_images == 1
        assert result.statistics.total_videos == 1

    async def test_robots_disallow_is_a_warning(self, no_sleep):
        """A robots.txt disallow is recorded but the sitemap is still read."""
        handler = site(
            {"/sitemap.xml": urlset("/a")},
            robots="User-agent: *\nDisallow: /sitemap.xml\n",
        )
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())

        assert result.locations == [f"{SITE}/a"]
        assert result.errors[0].type == SitemapErrorType.ACCESSIBILITY
        assert result.errors[0].severity == Severity.LOW

    async def test_validate_urls_samples_entries(self, no_sleep):
        """Sampled pages that don't respond are accessibility errors."""
        handler = site({
            "/sitemap.xml": urlset("/missing", "/b", "/c"),
            "/b": "<html/>",
            "/c": "<html/>",
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options(validate_urls=True))

        heads = [r for r in handler.requests if r.method == "HEAD"]
        assert [r.url.path for r in heads] == ["/missing"]
        assert result.errors[0].type == SitemapErrorType.ACCESSIBILITY
        assert result.errors[0].url == f"{SITE}/missing"

    async def test_siblings_fetched_in_batches(self, no_sleep):
        """Child sitemaps are fetched max_concurrent at a time with pauses."""
        children = [f"{SITE}/s{i}.xml" for i in range(5)]
        documents = {"/sitemap.xml": sitemapindex(*children)}
        documents.update({f"/s{i}.xml": urlset(f"/p{i}") for i in range(5)})
        reader = SitemapGraphReader(client=make_client(site(documents)), sleep=no_sleep)
        result = await reader.read_sitemap(
            f"{SITE}/sitemap.xml", options(max_concurrent=2, batch_delay=0.25)
        )

        assert result.locations == [f"{SITE}/p{i}" for i in range(5)]
        assert no_sleep.calls == [0.25, 0.25]

    async def test_robots_crawl_delay_lengthens_batch_pause(self, no_sleep):
        """A robots.txt Crawl-delay longer than batch_delay is used between batches."""
        children = [f"{SITE}/s{i}.xml" for i in range(3)]
        documents = {"/sitemap.xml": sitemapindex(*children)}
        documents.update({f"/s{i}.xml": urlset(f"/p{i}") for i in range(3)})
        handler = site(documents, robots="User-agent: *\nCrawl-delay: 2\n")
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemap(
            f"{SITE}/sitemap.xml", options(max_concurrent=2, batch_delay=0.25)
        )

        assert result.total_urls == 3
        assert no_sleep.calls == [2.0]

    async def test_unreadable_video_duration_keeps_entry(self, no_sleep):
        """A video duration that isn't whole seconds is dropped, not the page."""
        video = (
            "<video:video><video:thumbnail_loc>https://cdn.example/t.jpg</video:thumbnail_loc>"
            "<video:title>Clip</video:title><video:duration>PT10M</video:duration></video:video>"
        )
        body = (
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9" '
            'xmlns:video="http://www.google.com/schemas/sitemap-video/1.1">'
            f"<url><loc>{SITE}/a</loc>{video}</url>"
            f"<url><loc>{SITE}/b</loc></url>"
            "</urlset>"
        )
        reader = SitemapGraphReader(client=make_client(site({"/sitemap.xml": body})), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())

        assert result.locations == [f"{SITE}/a", f"{SITE}/b"]
        assert result.entries[0].videos[0].duration is None
        assert result.errors == []


class TestReadSitemaps:
    """Tests for merging several sitemaps."""

    async def test_merge(self, no_sleep):
        """Entries from all sitemaps are merged without duplicates."""
        handler = site({
            "/a.xml": urlset("/1", "/2"),
            "/b.xml": urlset("/2", "/3"),
        })
        reader = SitemapGraphReader(client=make_client(handler), sleep=no_sleep)
        result = await reader.read_sitemaps([f"{SITE}/a.xml", f"{SITE}/b.xml"], options())

        assert result.sitemap_type == "mixed"
        assert result.locations == [f"{SITE}/1", f"{SITE}/2", f"{SITE}/3"]
        assert result.statistics.total_pages == 3

    async def test_all_failing_raises(self, no_sleep):
        """If nothing could be read the caller gets an error."""
        reader = SitemapGraphReader(client=make_client(site({})), sleep=no_sleep)
        with pytest.raises(LinkGraphError):
            await reader.read_sitemaps([f"{SITE}/a.xml", "ftp://bad"], options())

    async def test_extract_urls(self, no_sleep):
        """extract_urls returns plain locations."""
        reader = SitemapGraphReader(client=make_client(site({"/s.xml": urlset("/x")})), sleep=no_sleep)
        assert await reader.extract_urls(f"{SITE}/s.xml", options()) == [f"{SITE}/x"]


class TestSitemapStatistics:
    """Tests for post-crawl statistics."""

    async def test_statistics_and_structure(self, no_sleep):
        """Priorities, frequencies, patterns and page types are aggregated."""
        body = (
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            f"<url><loc>{SITE}/</loc><priority>1.0</priority><changefreq>daily</changefreq>"
            "<lastmod>2024-03-01</lastmod></url>"
            f"<url><loc>{SITE}/blog/1</loc><priority>0.5</priority><changefreq>weekly</changefreq>"
            "<lastmod>2023-01-01</lastmod></url>"
            f"<url><loc>{SITE}/blog/2</loc><priority>0.6</priority><changefreq>weekly</changefreq></url>"
            f"<url><loc>{SITE}/blog/3?ref=x</loc></url>"
            "</urlset>"
        )
        reader = SitemapGraphReader(client=make_client(site({"/sitemap.xml": body})), sleep=no_sleep)
        result = await reader.read_sitemap(f"{SITE}/sitemap.xml", options())
        stats = result.statistics

        assert stats.total_pages == 4
        assert stats.average_priority == pytest.approx(0.7)
        assert stats.change_frequency_distribution == {"daily": 1, "weekly": 2}
        assert stats.last_modified_range["oldest"].startswith("2023-01-01")
        assert stats.last_modified_range["newest"].startswith("2024-03-01")
        assert stats.url_patterns[0].pattern == "/blog/{id}"
        assert stats.url_patterns[0].count == 3
        assert len(stats.url_patterns[0].examples) == 3

        structure = result.content_structure
        assert structure.page_types[0].type == "blog"
        assert structure.hierarchy_depth == 2
        assert 0 < structure.url_structure_score < 100
        assert 0 < structure.seo_optimization_score < 100
        assert result.to_dict()["total_urls"] == 4

    def test_empty_inventory(self):
        """Nothing to analyze gives zeroed statistics."""
        assert build_statistics([]).total_pages == 0
        assert analyze_content_structure([]).hierarchy_depth == 0
