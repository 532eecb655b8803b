"""Retry policy shared by the sitemap reader and the link health checker."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from ..exceptions import HttpStatusError, NetworkError


def _retry_network_errors(exc: BaseException) -> bool:
    return isinstance(exc, NetworkError) and exc.retryable


def _retry_network_and_server_errors(exc: BaseException) -> bool:
    if isinstance(exc, HttpStatusError):
        return exc.is_server_error
    return _retry_network_errors(exc)


@dataclass
class RetryPolicy:
    """Explicit retry policy: attempt ceiling, backoff and retryable predicate.

    ``backoff`` receives the number of the attempt that just failed (1-based)
    and returns the delay in seconds before the next one. ``sleep`` can be
    swapped out so tests don't wait on real timers.
    """

    max_attempts: int = 3
    backoff: Callable[[int], float] = lambda attempt: 1.0 * attempt
    is_retryable: Callable[[BaseException], bool] = _retry_network_errors
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    @classmethod
    def linear(
        cls,
        max_attempts: int,
        delay: float,
        is_retryable: Callable[[BaseException], bool] = _retry_network_errors,
    ) -> "RetryPolicy":
        """Policy waiting ``delay * attempt`` seconds between attempts."""
        return cls(
            max_attempts=max(1, max_attempts),
            backoff=lambda attempt: delay * attempt,
            is_retryable=is_retryable,
        )

    def _log_retry(self, retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.debug(
            "Attempt {}/{} failed ({}); retrying",
            retry_state.attempt_number,
            self.max_attempts,
            exc,
        )

    def retrying(self) -> AsyncRetrying:
        """Build the tenacity controller for this policy."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=lambda retry_state: self.backoff(retry_state.attempt_number),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=self._log_retry,
            sleep=self.sleep,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Run ``fn`` under this policy, re-raising the last error."""
        async for attempt in self.retrying():
            with attempt:
                return await fn(*args, **kwargs)


def sitemap_policy() -> RetryPolicy:
    """Three attempts with ``1s x attempt`` backoff; 5xx and transport errors retry."""
    return RetryPolicy.linear(3, 1.0, is_retryable=_retry_network_and_server_errors)


def health_policy(retry_attempts: int, retry_delay: float) -> RetryPolicy:
    """Retry transport errors only; statuses are classified, never retried.

    ``retry_attempts`` counts retries on top of the first probe. DNS failures
    and refused connections are not retryable and end the loop immediately.
    """
    return RetryPolicy.linear(retry_attempts + 1, retry_delay, is_retryable=_retry_network_errors)
