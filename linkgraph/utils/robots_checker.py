"""Robots.txt lookups for sitemap crawling."""

from typing import Dict, Optional
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import httpx
from loguru import logger

from ..config import get_settings


class RobotsChecker:
    """
    Checks robots.txt before a sitemap is fetched.

    Unlike a scraper this checker is advisory: a robots.txt that cannot be
    fetched is treated as allowing everything, and callers decide what to do
    with a disallow. Parsed files are cached per domain.
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.user_agent = user_agent or settings.user_agent
        self.timeout = timeout or settings.request_timeout_seconds
        self._client = client
        self._cache: Dict[str, RobotFileParser] = {}

    def _get_robots_url(self, url: str) -> str:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}/robots.txt"

    def _get_domain(self, url: str) -> str:
        return urlparse(url).netloc.lower()

    async def _download(self, robots_url: str) -> httpx.Response:
        headers = {"User-Agent": self.user_agent}
        if self._client is not None:
            return await self._client.get(robots_url, timeout=self.timeout, headers=headers)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await client.get(robots_url, timeout=self.timeout, headers=headers)

    async def _fetch_robots(self, url: str) -> Optional[RobotFileParser]:
        """Fetch and parse a robots.txt file; None when it is unavailable."""
        robots_url = self._get_robots_url(url)
        domain = self._get_domain(url)

        if domain in self._cache:
            return self._cache[domain]

        try:
            response = await self._download(robots_url)
        except httpx.HTTPError as e:
            logger.warning("Error fetching robots.txt for {}: {}", domain, e)
            return None

        rp = RobotFileParser()
        rp.set_url(robots_url)
        if response.status_code == 200:
            rp.parse(response.text.splitlines())
            logger.debug("Parsed robots.txt for {}", domain)
        elif response.status_code == 404:
            # No robots.txt means everything is allowed
            rp.parse([])
            logger.debug("No robots.txt found for {} (404)", domain)
        else:
            logger.warning("Failed to fetch robots.txt for {}: {}", domain, response.status_code)
            return None

        self._cache[domain] = rp
        return rp

    async def can_fetch(self, url: str) -> bool:
        """
        Check whether robots.txt allows our user agent to fetch ``url``.

        Returns True when robots.txt is missing or could not be fetched.
        """
        rp = await self._fetch_robots(url)
        if rp is None:
            return True

        allowed = rp.can_fetch(self.user_agent, url)
        if not allowed:
            logger.info("robots.txt disallows fetching: {}", url)
        return allowed

    def get_crawl_delay(self, url: str) -> Optional[float]:
        """Get the crawl delay specified in robots.txt, if any."""
        rp = self._cache.get(self._get_domain(url))
        if rp is None:
            return None
        delay = rp.crawl_delay(self.user_agent)
        return float(delay) if delay is not None else None
