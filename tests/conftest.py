"""Shared fixtures for the link graph tests."""

import httpx
import pytest

from linkgraph.config import Settings


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def no_sleep():
    """Sleep replacement so retries and batch pauses don't wait."""
    return SleepRecorder()


@pytest.fixture
def settings():
    """Default settings, independent of the caller's environment."""
    return Settings(_env_file=None)
