"""
Link Health Checker

Probes URLs in bounded concurrent batches and classifies each one as
working, broken, redirect, warning or unknown. A check cycle can be diffed
against the previous one through a ``HealthCache``.
"""

import asyncio
import time
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional
from urllib.parse import urljoin

import httpx
from loguru import logger

from ..config import Settings, get_settings
from ..exceptions import NetworkError
from ..models.health import (
    HealthTransition,
    LinkAnalysisResult,
    LinkHealthRecord,
    LinkStatus,
    MonitorReport,
)
from ..utils.health_cache import HealthCache, InMemoryHealthCache
from ..utils.http import translate_error
from ..utils.retry import health_policy
from ..utils.urls import is_http_url


# Statuses that mean "this server doesn't do HEAD", retried as GET
HEAD_FALLBACK_STATUSES = (405, 501)

STATUS_SUGGESTIONS = {
    404: [
        "Check if the URL has changed",
        "Look for a replacement page on the same site",
        "Remove the link if the content no longer exists",
    ],
    410: ["The resource was permanently removed; remove or replace the link"],
    401: ["The page requires authentication; verify the link manually"],
    403: ["The server blocks automated access; verify the link manually"],
    429: ["Rate limited by the server; re-check later with lower concurrency"],
}

NETWORK_SUGGESTIONS = {
    NetworkError.TIMEOUT: ["The server did not respond in time; re-check later or raise the timeout"],
    NetworkError.DNS: ["The domain could not be resolved; check for typos or an expired domain"],
    NetworkError.REFUSED: ["The server refused the connection; check that the site is up"],
}


@dataclass
class LinkCheckOptions:
    """Per-call options for a check cycle."""
    timeout: float = 10.0
    max_concurrent: int = 5
    retry_attempts: int = 2
    retry_delay: float = 1.0
    follow_redirects: bool = True
    slow_link_threshold_ms: float = 5000.0
    batch_delay: float = 0.1
    user_agent: str = "LinkGraphBot/1.0"
    slowest_count: int = 5
    cancel_event: Optional[asyncio.Event] = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "LinkCheckOptions":
        settings = settings or get_settings()
        values = dict(
            timeout=settings.request_timeout_seconds,
            max_concurrent=settings.max_concurrent_checks,
            retry_attempts=settings.retry_attempts,
            retry_delay=settings.retry_delay_seconds,
            slow_link_threshold_ms=settings.slow_link_threshold_ms,
            batch_delay=settings.batch_delay_seconds,
            user_agent=settings.user_agent,
        )
        values.update(overrides)
        return cls(**values)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


def status_suggestions(status_code: int) -> list[str]:
    if status_code in STATUS_SUGGESTIONS:
        return list(STATUS_SUGGESTIONS[status_code])
    if status_code >= 500:
        return [
            "Server error; re-check later",
            "Contact the site owner if the error persists",
        ]
    return ["Verify the URL is correct"]


def network_suggestions(kind: str) -> list[str]:
    return list(NETWORK_SUGGESTIONS.get(
        kind, ["Check network connectivity and that the site is reachable"]
    ))


class LinkHealthChecker:
    """
    Batched HEAD/GET prober.

    An ``httpx.AsyncClient`` can be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise one client is opened per cycle.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[HealthCache] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.cache = cache if cache is not None else InMemoryHealthCache(self.settings.health_cache_size)
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self, options: LinkCheckOptions) -> AsyncIterator[httpx.AsyncClient]:
        if self.client is not None:
            yield self.client
            return
        async with httpx.AsyncClient(
            headers={"User-Agent": options.user_agent},
            timeout=options.timeout,
        ) as client:
            yield client

    async def _request(
        self, client: httpx.AsyncClient, method: str, url: str, options: LinkCheckOptions
    ) -> httpx.Response:
        try:
            return await asyncio.wait_for(
                client.request(
                    method,
                    url,
                    headers={"User-Agent": options.user_agent},
                    follow_redirects=options.follow_redirects,
                    timeout=options.timeout,
                ),
                timeout=options.timeout,
            )
        except (asyncio.TimeoutError, httpx.HTTPError) as e:
            raise translate_error(e, url) from e

    async def _probe(
        self, client: httpx.AsyncClient, url: str, options: LinkCheckOptions
    ) -> tuple[httpx.Response, float]:
        """One timed probe: HEAD, falling back to GET where HEAD isn't supported."""
        started = time.perf_counter()
        response = await self._request(client, "HEAD", url, options)
        if response.status_code in HEAD_FALLBACK_STATUSES:
            logger.debug("HEAD not supported by {} ({}), retrying with GET", url, response.status_code)
            response = await self._request(client, "GET", url, options)
        elapsed_ms = (time.perf_counter() - started) * 1000
        return response, round(elapsed_ms, 2)

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def _classify(
        self, url: str, response: httpx.Response, elapsed_ms: float, options: LinkCheckOptions
    ) -> LinkHealthRecord:
        code = response.status_code

        if code >= 400:
            return LinkHealthRecord(
                url=url,
                status=LinkStatus.BROKEN,
                status_code=code,
                response_time_ms=elapsed_ms,
                suggestions=tuple(status_suggestions(code)),
                error=f"HTTP {code}",
            )

        target = None
        if response.history:
            target = str(response.url)
        elif 300 <= code < 400:
            location = response.headers.get("location")
            target = urljoin(url, location) if location else None

        if target is not None or 300 <= code < 400:
            return LinkHealthRecord(
                url=url,
                status=LinkStatus.REDIRECT,
                status_code=response.history[0].status_code if response.history else code,
                redirect_target=target,
                response_time_ms=elapsed_ms,
                suggestions=(f"Update the link to point directly to {target}",) if target else (),
            )

        if elapsed_ms > options.slow_link_threshold_ms:
            return LinkHealthRecord(
                url=url,
                status=LinkStatus.WARNING,
                status_code=code,
                response_time_ms=elapsed_ms,
                suggestions=(
                    f"Response took {elapsed_ms:.0f} ms; consider linking to a faster resource",
                ),
            )

        return LinkHealthRecord(
            url=url, status=LinkStatus.WORKING, status_code=code, response_time_ms=elapsed_ms
        )

    async def _check(
        self, client: httpx.AsyncClient, url: str, options: LinkCheckOptions
    ) -> LinkHealthRecord:
        if not is_http_url(url):
            return LinkHealthRecord(url=url, status=LinkStatus.UNKNOWN, error="Unsupported URL scheme")

        policy = health_policy(options.retry_attempts, options.retry_delay)
        policy.sleep = self._sleep
        try:
            response, elapsed_ms = await policy.call(self._probe, client, url, options)
        except NetworkError as e:
            logger.debug("Link {} failed: {}", url, e)
            return LinkHealthRecord(
                url=url,
                status=LinkStatus.BROKEN,
                error=str(e),
                suggestions=tuple(network_suggestions(e.kind)),
            )
        return self._classify(url, response, elapsed_ms, options)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def check_link(self, url: str, options: Optional[LinkCheckOptions] = None) -> LinkHealthRecord:
        """Check a single URL."""
        options = options or LinkCheckOptions.from_settings(self.settings)
        async with self._session(options) as client:
            return await self._check(client, url, options)

    async def check_links(
        self, urls: Iterable[str], options: Optional[LinkCheckOptions] = None
    ) -> LinkAnalysisResult:
        """
        Check every URL once and aggregate the results.

        Args:
            urls: URLs to probe; duplicates are checked once, order is kept
            options: Per-call options, defaults from settings

        Returns:
            LinkAnalysisResult with one record per unique URL
        """
        options = options or LinkCheckOptions.from_settings(self.settings)
        unique = list(dict.fromkeys(url for url in urls if isinstance(url, str)))
        batch_size = max(1, options.max_concurrent)
        records: list[LinkHealthRecord] = []

        logger.info("Checking {} links in batches of {}", len(unique), batch_size)

        async with self._session(options) as client:
            for start in range(0, len(unique), batch_size):
                if start > 0 and options.batch_delay > 0:
                    await self._sleep(options.batch_delay)
                if options.cancelled:
                    logger.warning("Link check cancelled with {} URLs pending", len(unique) - start)
                    records.extend(
                        LinkHealthRecord(url=url, status=LinkStatus.UNKNOWN, error="Check cancelled")
                        for url in unique[start:]
                    )
                    break

                batch = unique[start:start + batch_size]
                outcomes = await asyncio.gather(
                    *(self._check(client, url, options) for url in batch),
                    return_exceptions=True,
                )
                for url, outcome in zip(batch, outcomes):
                    if isinstance(outcome, Exception):
                        logger.error("Unexpected error checking {}: {}", url, outcome)
                        outcome = LinkHealthRecord(url=url, status=LinkStatus.UNKNOWN, error=str(outcome))
                    records.append(outcome)

        result = self._aggregate(records, options)
        logger.info(
            "Checked {} links: {} working, {} broken, {} redirects (health {}%)",
            result.total_links,
            result.working_links,
            result.broken_links,
            result.redirect_links,
            result.health_score,
        )
        return result

    def _aggregate(self, records: list[LinkHealthRecord], options: LinkCheckOptions) -> LinkAnalysisResult:
        timed = [r for r in records if r.response_time_ms is not None]
        average = sum(r.response_time_ms for r in timed) / len(timed) if timed else 0.0
        slowest = sorted(timed, key=lambda r: r.response_time_ms, reverse=True)[:options.slowest_count]
        errors = Counter(r.error for r in records if r.error)
        return LinkAnalysisResult(
            records=records,
            average_response_time_ms=round(average, 2),
            slowest_links=slowest,
            error_frequency=dict(errors.most_common()),
        )

    async def monitor_link_health(
        self,
        urls: Iterable[str],
        options: Optional[LinkCheckOptions] = None,
        cache: Optional[HealthCache] = None,
    ) -> MonitorReport:
        """
        Run a check cycle and compare it with the last known state.

        Each record is diffed against ``cache.get(url)`` and then stored,
        replacing the previous record.
        """
        cache = cache if cache is not None else self.cache
        result = await self.check_links(urls, options)
        report = MonitorReport(result=result)

        for record in result.records:
            previous = cache.get(record.url)
            if previous is None:
                report.trend["new"] += 1
            else:
                transition = HealthTransition(record.url, previous.status, record.status)
                report.trend[transition.direction] += 1
                if transition.previous != transition.current:
                    report.transitions.append(transition)
            cache.put(record.url, record)

        if report.trend["degrading"]:
            logger.warning("{} links degraded since the last check", report.trend["degrading"])
        return report
