"""Error taxonomy for the link graph engine.

Per-item failures (one broken URL, one unparsable sitemap, one unplaceable
candidate) are captured into result objects; these exceptions travel between
the network helpers and the components that collect them. Only a fully
invalid top-level input reaches the caller as ``ValidationError``.
"""

from typing import Optional


class LinkGraphError(Exception):
    """Base class for all engine errors."""


class NetworkError(LinkGraphError):
    """Transport-level failure: timeout, DNS failure, refused connection."""

    TIMEOUT = "timeout"
    DNS = "dns"
    REFUSED = "refused"
    CONNECTION = "connection"
    PROTOCOL = "protocol"

    # Kinds that will not resolve themselves on a retry
    PERMANENT_KINDS = frozenset({DNS, REFUSED})

    def __init__(self, message: str, url: Optional[str] = None, kind: str = CONNECTION):
        super().__init__(message)
        self.url = url
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind not in self.PERMANENT_KINDS


class HttpStatusError(LinkGraphError):
    """The server answered with a 4xx/5xx status."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: int = 0):
        super().__init__(message)
        self.url = url
        self.status_code = status_code

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class ParseError(LinkGraphError):
    """Malformed XML or an unrecognised sitemap document."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ValidationError(LinkGraphError):
    """Malformed input URL or payload."""

    def __init__(self, message: str, value: Optional[str] = None):
        super().__init__(message)
        self.value = value
