"""Candidate links and the plan produced for them."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class AnchorTextClass(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    BRANDED = "branded"
    GENERIC = "generic"
    LSI = "lsi"


@dataclass(frozen=True)
class CandidateLink:
    """A proposed internal link: anchor keyword plus target URL."""
    keyword: str
    target_url: str
    priority: int = 5
    anchor_text_class: AnchorTextClass = AnchorTextClass.EXACT
    target_section: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "target_url": self.target_url,
            "priority": self.priority,
            "anchor_text_class": self.anchor_text_class.value,
            "target_section": self.target_section,
        }


@dataclass(frozen=True)
class PlacementDecision:
    """Where a candidate's anchor lands in the document."""
    candidate: CandidateLink
    section_index: int
    section_title: str
    paragraph_index: int
    character_offset: int
    length: int
    anchor_text: str
    confidence: float
    rationale: str

    @property
    def end_offset(self) -> int:
        return self.character_offset + self.length

    def overlaps(self, other: "PlacementDecision") -> bool:
        # A zero-length insertion still occupies its offset
        return (
            self.character_offset < max(other.end_offset, other.character_offset + 1)
            and other.character_offset < max(self.end_offset, self.character_offset + 1)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate": self.candidate.to_dict(),
            "section_index": self.section_index,
            "section_title": self.section_title,
            "paragraph_index": self.paragraph_index,
            "character_offset": self.character_offset,
            "length": self.length,
            "anchor_text": self.anchor_text,
            "confidence": self.confidence,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class PlacementSkip:
    candidate: CandidateLink
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"candidate": self.candidate.to_dict(), "reason": self.reason}


@dataclass
class DistributionStatistics:
    total_links_placed: int = 0
    link_density: float = 0.0
    average_distance_between_links: float = 0.0
    paragraphs_with_links: int = 0
    sections_with_links: int = 0
    anchor_text_type_distribution: dict[str, int] = field(default_factory=dict)
    paragraph_coverage: float = 0.0
    section_coverage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_links_placed": self.total_links_placed,
            "link_density": self.link_density,
            "average_distance_between_links": self.average_distance_between_links,
            "paragraphs_with_links": self.paragraphs_with_links,
            "sections_with_links": self.sections_with_links,
            "anchor_text_type_distribution": dict(self.anchor_text_type_distribution),
            "paragraph_coverage": self.paragraph_coverage,
            "section_coverage": self.section_coverage,
        }


@dataclass
class DistributionResult:
    """Planned placements, skips and the rewritten content."""
    optimized_content: str
    placed: list[PlacementDecision] = field(default_factory=list)
    skipped: list[PlacementSkip] = field(default_factory=list)
    distribution_score: float = 0.0
    recommendations: list[str] = field(default_factory=list)
    statistics: DistributionStatistics = field(default_factory=DistributionStatistics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "optimized_content": self.optimized_content,
            "placed": [decision.to_dict() for decision in self.placed],
            "skipped": [skip.to_dict() for skip in self.skipped],
            "distribution_score": self.distribution_score,
            "recommendations": list(self.recommendations),
            "statistics": self.statistics.to_dict(),
        }


@dataclass(frozen=True)
class Replacement:
    """Suggested substitute for a broken link."""
    broken_url: str
    suggested_url: str
    confidence: float
    similarity: float
    source: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "broken_url": self.broken_url,
            "suggested_url": self.suggested_url,
            "confidence": self.confidence,
            "similarity": self.similarity,
            "source": self.source,
            "reason": self.reason,
        }
