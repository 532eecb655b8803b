"""
Replacement Advisor

Suggests substitutes for broken links: a live, structurally similar page
from the same site's URL inventory, or failing that an archived snapshot.
"""

from typing import Iterable, Optional, Union

import httpx
from loguru import logger

from ..config import Settings, get_settings
from ..models.health import LinkHealthRecord
from ..models.placement import Replacement
from ..models.sitemap import SitemapAnalysisResult, SitemapEntry
from ..utils.urls import extract_host, is_http_url, normalize_url, segment_similarity
from .health_checker import LinkCheckOptions, LinkHealthChecker


WAYBACK_SNAPSHOT_URL = "https://web.archive.org/web/{url}"
WAYBACK_AVAILABILITY_API = "https://archive.org/wayback/available"

SIMILARITY_THRESHOLD = 0.5
MAX_PROBES_PER_LINK = 3
ARCHIVE_CONFIDENCE = 0.3

InventoryInput = Union[SitemapAnalysisResult, Iterable[Union[str, SitemapEntry]]]


def replacement_confidence(similarity: float) -> float:
    return round(min(0.95, 0.4 + 0.6 * similarity), 3)


def _inventory_urls(inventory: InventoryInput) -> list[str]:
    if isinstance(inventory, SitemapAnalysisResult):
        return inventory.locations
    urls = []
    for item in inventory:
        url = item.location if isinstance(item, SitemapEntry) else item
        if is_http_url(url):
            urls.append(url)
    return list(dict.fromkeys(urls))


class ReplacementAdvisor:
    """
    Finds replacements for broken links.

    Candidates are same-host inventory URLs whose normalized path segments
    match the broken URL's by more than half; the best three are probed and
    the first live one wins.
    """

    def __init__(
        self,
        health_checker: Optional[LinkHealthChecker] = None,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        resolve_archive: bool = False,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.health_checker = health_checker or LinkHealthChecker(client=client, settings=self.settings)
        self.resolve_archive = resolve_archive

    def similar_urls(self, broken_url: str, inventory: list[str]) -> list[tuple[str, float]]:
        """Same-host inventory URLs above the similarity threshold, best first."""
        host = extract_host(broken_url)
        broken = normalize_url(broken_url)
        scored = []
        for url in inventory:
            if extract_host(url) != host or normalize_url(url) == broken:
                continue
            similarity = segment_similarity(broken_url, url)
            if similarity > SIMILARITY_THRESHOLD:
                scored.append((url, similarity))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored

    async def _lookup_archive(self, url: str) -> Optional[str]:
        """Ask the Wayback availability API for the closest snapshot."""
        try:
            if self.client is not None:
                response = await self.client.get(WAYBACK_AVAILABILITY_API, params={"url": url})
            else:
                async with httpx.AsyncClient(timeout=self.settings.request_timeout_seconds) as client:
                    response = await client.get(WAYBACK_AVAILABILITY_API, params={"url": url})
            response.raise_for_status()
            closest = response.json().get("archived_snapshots", {}).get("closest") or {}
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Wayback lookup failed for {}: {}", url, e)
            return None
        if closest.get("available") and closest.get("url"):
            return closest["url"]
        return None

    async def _archive_replacement(self, broken_url: str) -> Replacement:
        snapshot = None
        if self.resolve_archive:
            snapshot = await self._lookup_archive(broken_url)
        return Replacement(
            broken_url=broken_url,
            suggested_url=snapshot or WAYBACK_SNAPSHOT_URL.format(url=broken_url),
            confidence=ARCHIVE_CONFIDENCE,
            similarity=0.0,
            source="archive",
            reason="No live alternative on the same site; archived snapshot",
        )

    async def suggest_replacements(
        self,
        broken_links: Iterable[Union[str, LinkHealthRecord]],
        url_inventory: InventoryInput,
        options: Optional[LinkCheckOptions] = None,
    ) -> list[Replacement]:
        """
        Suggest one replacement per broken link.

        Args:
            broken_links: Broken URLs or their health records
            url_inventory: Known URLs of the site, e.g. a sitemap result
            options: Options for the liveness probes

        Returns:
            Replacements in the order of ``broken_links``
        """
        broken = list(dict.fromkeys(
            link.url if isinstance(link, LinkHealthRecord) else link for link in broken_links
        ))
        inventory = _inventory_urls(url_inventory)

        shortlist = {
            url: self.similar_urls(url, inventory)[:MAX_PROBES_PER_LINK] for url in broken
        }
        to_probe = list(dict.fromkeys(candidate for pairs in shortlist.values() for candidate, _ in pairs))
        health = {}
        if to_probe:
            checked = await self.health_checker.check_links(to_probe, options)
            health = {record.url: record for record in checked.records}

        replacements = []
        for url in broken:
            match = next(
                ((candidate, similarity) for candidate, similarity in shortlist[url]
                 if candidate in health and health[candidate].is_healthy),
                None,
            )
            if match is None:
                logger.debug("No live replacement for {}; falling back to archive", url)
                replacements.append(await self._archive_replacement(url))
                continue
            candidate, similarity = match
            replacements.append(Replacement(
                broken_url=url,
                suggested_url=candidate,
                confidence=replacement_confidence(similarity),
                similarity=round(similarity, 3),
                source="inventory",
                reason=f"Live page on the same site with {similarity:.0%} matching path segments",
            ))

        logger.info(
            "Suggested {} replacements ({} from inventory)",
            len(replacements),
            sum(1 for r in replacements if r.source == "inventory"),
        )
        return replacements
