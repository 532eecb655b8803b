"""Link health records and check-cycle results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class LinkStatus(str, Enum):
    """Outcome of probing a single URL."""
    WORKING = "working"
    BROKEN = "broken"
    REDIRECT = "redirect"
    WARNING = "warning"
    UNKNOWN = "unknown"

    @property
    def rank(self) -> int:
        """Ordering used for trend comparison; higher is healthier."""
        return {
            LinkStatus.BROKEN: 0,
            LinkStatus.UNKNOWN: 1,
            LinkStatus.WARNING: 2,
            LinkStatus.REDIRECT: 2,
            LinkStatus.WORKING: 3,
        }[self]


@dataclass(frozen=True)
class LinkHealthRecord:
    """Result of one check cycle for one URL; superseded by the next cycle."""
    url: str
    status: LinkStatus
    status_code: Optional[int] = None
    redirect_target: Optional[str] = None
    response_time_ms: Optional[float] = None
    last_checked_at: datetime = field(default_factory=datetime.utcnow)
    suggestions: tuple[str, ...] = ()
    error: Optional[str] = None

    @property
    def is_healthy(self) -> bool:
        return self.status in (LinkStatus.WORKING, LinkStatus.WARNING)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status.value,
            "status_code": self.status_code,
            "redirect_target": self.redirect_target,
            "response_time_ms": self.response_time_ms,
            "last_checked_at": self.last_checked_at.isoformat(),
            "suggestions": list(self.suggestions),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LinkHealthRecord":
        checked = data.get("last_checked_at")
        return cls(
            url=data["url"],
            status=LinkStatus(data["status"]),
            status_code=data.get("status_code"),
            redirect_target=data.get("redirect_target"),
            response_time_ms=data.get("response_time_ms"),
            last_checked_at=datetime.fromisoformat(checked) if checked else datetime.utcnow(),
            suggestions=tuple(data.get("suggestions") or ()),
            error=data.get("error"),
        )


@dataclass
class LinkAnalysisResult:
    """Aggregate of one ``check_links`` run."""
    records: list[LinkHealthRecord] = field(default_factory=list)
    average_response_time_ms: float = 0.0
    slowest_links: list[LinkHealthRecord] = field(default_factory=list)
    error_frequency: dict[str, int] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=datetime.utcnow)

    def _count(self, status: LinkStatus) -> int:
        return sum(1 for record in self.records if record.status == status)

    @property
    def total_links(self) -> int:
        return len(self.records)

    @property
    def working_links(self) -> int:
        return self._count(LinkStatus.WORKING)

    @property
    def broken_links(self) -> int:
        return self._count(LinkStatus.BROKEN)

    @property
    def redirect_links(self) -> int:
        return self._count(LinkStatus.REDIRECT)

    @property
    def warning_links(self) -> int:
        return self._count(LinkStatus.WARNING)

    @property
    def unknown_links(self) -> int:
        return self._count(LinkStatus.UNKNOWN)

    @property
    def health_score(self) -> float:
        """Share of working links as a percentage (100 for an empty run)."""
        if not self.records:
            return 100.0
        return round(self.working_links / self.total_links * 100, 1)

    def by_status(self, status: LinkStatus) -> list[LinkHealthRecord]:
        return [record for record in self.records if record.status == status]

    def get(self, url: str) -> Optional[LinkHealthRecord]:
        for record in self.records:
            if record.url == url:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [record.to_dict() for record in self.records],
            "total_links": self.total_links,
            "working_links": self.working_links,
            "broken_links": self.broken_links,
            "redirect_links": self.redirect_links,
            "warning_links": self.warning_links,
            "unknown_links": self.unknown_links,
            "health_score": self.health_score,
            "average_response_time_ms": self.average_response_time_ms,
            "slowest_links": [record.to_dict() for record in self.slowest_links],
            "error_frequency": dict(self.error_frequency),
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass(frozen=True)
class HealthTransition:
    url: str
    previous: LinkStatus
    current: LinkStatus

    @property
    def direction(self) -> str:
        if self.current.rank > self.previous.rank:
            return "improving"
        if self.current.rank < self.previous.rank:
            return "degrading"
        return "stable"


@dataclass
class MonitorReport:
    """Current run diffed against the last cached record per URL."""
    result: LinkAnalysisResult
    transitions: list[HealthTransition] = field(default_factory=list)
    trend: dict[str, int] = field(
        default_factory=lambda: {"improving": 0, "degrading": 0, "stable": 0, "new": 0}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result.to_dict(),
            "transitions": [
                {
                    "url": t.url,
                    "previous": t.previous.value,
                    "current": t.current.value,
                    "direction": t.direction,
                }
                for t in self.transitions
            ],
            "trend": dict(self.trend),
        }
