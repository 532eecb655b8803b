"""httpx helpers shared by the network components."""

import asyncio

import httpx

from ..exceptions import NetworkError

DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "temporary failure in name resolution",
    "no address associated",
)


def translate_error(exc: Exception, url: str) -> NetworkError:
    """Map an httpx/asyncio failure onto a ``NetworkError`` kind."""
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return NetworkError(f"Request timed out: {url}", url, NetworkError.TIMEOUT)
    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    if isinstance(exc, httpx.ConnectError):
        if any(marker in lowered for marker in DNS_MARKERS):
            return NetworkError(f"DNS lookup failed: {message}", url, NetworkError.DNS)
        if "refused" in lowered:
            return NetworkError(f"Connection refused: {message}", url, NetworkError.REFUSED)
        return NetworkError(f"Connection failed: {message}", url, NetworkError.CONNECTION)
    if isinstance(exc, (httpx.ProtocolError, httpx.UnsupportedProtocol)):
        return NetworkError(f"Protocol error: {message}", url, NetworkError.PROTOCOL)
    return NetworkError(f"Request failed: {message}", url, NetworkError.CONNECTION)
