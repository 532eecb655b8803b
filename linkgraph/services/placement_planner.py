"""
Link Placement Planner

Greedy, priority-ordered placement of candidate internal links into a
parsed document. Every candidate ends up as exactly one PlacementDecision
or one PlacementSkip; the planner never raises for a single candidate.
"""

import html
import math
import re
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

from loguru import logger

from ..config import Settings, get_settings
from ..exceptions import ValidationError
from ..models.content import ContentDocument, Paragraph, Section
from ..models.health import LinkAnalysisResult, LinkHealthRecord, LinkStatus
from ..models.placement import (
    AnchorTextClass,
    CandidateLink,
    DistributionResult,
    DistributionStatistics,
    PlacementDecision,
    PlacementSkip,
)
from ..schemas import validate_candidate
from ..utils.urls import normalize_url
from .structure_parser import MARKDOWN_LINK, ContentStructureParser, extract_links


HTML_ANCHOR = re.compile(r"<a\b[^>]*>.*?</a\s*>", re.IGNORECASE | re.DOTALL)
HTML_TAG = re.compile(r"<[^>]+>")
INLINE_CODE = re.compile(r"`[^`\n]+`")
BLOCKQUOTE = re.compile(r"^[ \t]*>.*$", re.MULTILINE)
WHITESPACE = re.compile(r"\s")
WORD = re.compile(r"\S+")

MIDPOINT_CONFIDENCE = 0.3

HealthInput = Union[LinkAnalysisResult, Mapping[str, Union[LinkHealthRecord, LinkStatus, str]]]


@dataclass
class ScoreWeights:
    """Weights of the 0-100 distribution score."""
    density_penalty_per_point: float = 5.0
    density_penalty_cap: float = 30.0
    section_spread_penalty: float = 20.0
    spacing_penalty: float = 15.0
    breadth_bonus: float = 10.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ScoreWeights":
        settings = settings or get_settings()
        return cls(
            density_penalty_per_point=settings.density_penalty_per_point,
            density_penalty_cap=settings.density_penalty_cap,
            section_spread_penalty=settings.section_spread_penalty,
            spacing_penalty=settings.spacing_penalty,
            breadth_bonus=settings.breadth_bonus,
        )


@dataclass
class PlacementOptions:
    max_links_per_page: int = 100
    max_links_per_paragraph: int = 2
    min_distance_between_links_words: int = 50
    preferred_link_density_per_100_words: float = 2.0
    avoid_link_clusters: bool = True
    balance_anchor_text_types: bool = True
    max_exact_anchor_share: float = 0.6
    allow_redirect_targets: bool = True
    link_style: str = "html"
    weights: ScoreWeights = field(default_factory=ScoreWeights)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "PlacementOptions":
        settings = settings or get_settings()
        values = dict(
            max_links_per_page=settings.max_links_per_page,
            max_links_per_paragraph=settings.max_links_per_paragraph,
            min_distance_between_links_words=settings.min_distance_between_links_words,
            preferred_link_density_per_100_words=settings.preferred_link_density,
            weights=ScoreWeights.from_settings(settings),
        )
        values.update(overrides)
        return cls(**values)


@dataclass
class _Slot:
    """A usable position inside a paragraph."""
    section_index: int
    paragraph_index: int
    offset: int
    length: int
    anchor_text: str
    score: float
    occurrences: int


def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", re.IGNORECASE)


def render_link(url: str, anchor_text: str, keyword: str, style: str = "html") -> str:
    if style == "markdown":
        return f"[{anchor_text}]({url})"
    return (
        f'<a href="{html.escape(url, quote=True)}" title="{html.escape(keyword, quote=True)}">'
        f"{anchor_text}</a>"
    )


def _health_map(health: Optional[HealthInput]) -> dict[str, LinkStatus]:
    if health is None:
        return {}
    if isinstance(health, LinkAnalysisResult):
        items = ((record.url, record) for record in health.records)
    else:
        items = health.items()
    statuses = {}
    for url, value in items:
        if isinstance(value, LinkHealthRecord):
            status = value.status
        else:
            status = LinkStatus(value)
        statuses[normalize_url(url)] = status
    return statuses


class _Plan:
    """Working state for one ``plan_placement`` call."""

    def __init__(self, document: ContentDocument, existing_links: Iterable[str], options: PlacementOptions):
        self.document = document
        self.options = options
        text = document.text

        self.word_starts = [m.start() for m in WORD.finditer(text)]
        self.protected: list[tuple[int, int]] = sorted(
            [(m.start(), m.end()) for m in MARKDOWN_LINK.finditer(text)]
            + [(m.start(), m.end()) for m in HTML_ANCHOR.finditer(text)]
            + [(m.start(), m.end()) for m in HTML_TAG.finditer(text)]
            + [(m.start(), m.end()) for m in INLINE_CODE.finditer(text)]
            + [(m.start(), m.end()) for m in BLOCKQUOTE.finditer(text)]
        )
        self.link_positions: list[int] = [
            self.word_index(link.start_offset)
            for link in extract_links(text)
            if link.start_offset >= 0
        ]
        self.existing_targets = {normalize_url(url) for url in existing_links if url}
        self.existing_count = max(document.existing_link_count, len(self.existing_targets))

        self.section_budget = [self._budget(section) for section in document.sections]
        self.paragraph_planned: dict[tuple[int, int], int] = {}
        self.placed: list[PlacementDecision] = []
        self.placed_targets: set[str] = set()
        self.placed_anchors: set[str] = set()
        self.exact_placed = 0

    def _budget(self, section: Section) -> int:
        by_density = math.floor(section.word_count * self.options.preferred_link_density_per_100_words / 100)
        return min(section.link_capacity, by_density)

    def word_index(self, offset: int) -> int:
        return max(0, bisect_right(self.word_starts, offset) - 1)

    def is_protected(self, start: int, end: int) -> bool:
        return any(p_start < end and start < p_end for p_start, p_end in self.protected)

    def well_spaced(self, offset: int) -> bool:
        if not self.options.avoid_link_clusters:
            return True
        position = self.word_index(offset)
        minimum = self.options.min_distance_between_links_words
        planned = [self.word_index(d.character_offset) for d in self.placed]
        return all(abs(position - other) >= minimum for other in self.link_positions + planned)

    def overlaps_planned(self, start: int, end: int) -> bool:
        return any(
            d.character_offset < max(end, start + 1) and start < max(d.end_offset, d.character_offset + 1)
            for d in self.placed
        )

    def remaining_capacity(self, section_index: int, paragraph_index: int, paragraph: Paragraph) -> int:
        planned = self.paragraph_planned.get((section_index, paragraph_index), 0)
        if paragraph.is_code or paragraph.link_capacity <= 0:
            return 0
        if paragraph.existing_link_count + planned >= self.options.max_links_per_paragraph:
            return 0
        return paragraph.link_capacity - planned

    def paragraph_score(self, capacity: int, occurrences: int, paragraph: Paragraph) -> float:
        return (
            10 * capacity
            + min(5 * occurrences, 20)
            + min(paragraph.word_count / 10, 15)
            - 5 * paragraph.existing_link_count
        )


class LinkPlacementPlanner:
    """Plans where candidate links go in a document and applies them."""

    def __init__(self, parser: Optional[ContentStructureParser] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.parser = parser or ContentStructureParser(settings=self.settings)

    # -------------------------------------------------------------------------
    # Candidate filtering
    # -------------------------------------------------------------------------

    def _coerce(self, payloads: Iterable[Any]) -> tuple[list[CandidateLink], list[PlacementSkip]]:
        candidates, skips = [], []
        for payload in payloads:
            try:
                candidates.append(validate_candidate(payload))
            except ValidationError as e:
                if isinstance(payload, CandidateLink):
                    stand_in = payload
                else:
                    raw = payload if isinstance(payload, Mapping) else {}
                    stand_in = CandidateLink(
                        keyword=str(raw.get("keyword", "")),
                        target_url=str(raw.get("url", raw.get("target_url", ""))),
                    )
                skips.append(PlacementSkip(stand_in, str(e)))
        return candidates, skips

    def _health_skip(
        self, candidate: CandidateLink, statuses: dict[str, LinkStatus], options: PlacementOptions
    ) -> Optional[str]:
        status = statuses.get(normalize_url(candidate.target_url))
        if status == LinkStatus.BROKEN:
            return "Target URL is broken"
        if status == LinkStatus.UNKNOWN:
            return "Target URL health is unknown"
        if status == LinkStatus.REDIRECT and not options.allow_redirect_targets:
            return "Target URL redirects; link the final URL instead"
        return None

    def _limit_skip(self, candidate: CandidateLink, plan: _Plan, total_candidates: int) -> Optional[str]:
        options = plan.options
        target = normalize_url(candidate.target_url)
        if plan.existing_count + len(plan.placed) >= options.max_links_per_page:
            return f"Page link limit of {options.max_links_per_page} reached"
        if target in plan.existing_targets:
            return "Page already links to this target"
        if target in plan.placed_targets:
            return "Duplicate target URL"
        if candidate.keyword.lower() in plan.placed_anchors:
            return "Duplicate anchor text"
        if options.balance_anchor_text_types and candidate.anchor_text_class == AnchorTextClass.EXACT:
            limit = math.ceil(options.max_exact_anchor_share * total_candidates)
            if plan.exact_placed + 1 > limit:
                return "Too many exact-match anchors; vary the anchor text"
        return None

    # -------------------------------------------------------------------------
    # Section and paragraph selection
    # -------------------------------------------------------------------------

    def _sections_for(self, candidate: CandidateLink, plan: _Plan) -> list[int]:
        hint = (candidate.target_section or "").strip().lower()
        indexes = [
            i for i, section in enumerate(plan.document.sections)
            if plan.section_budget[i] > 0 and (not hint or hint in section.title.lower())
        ]
        return sorted(indexes, key=lambda i: -plan.document.sections[i].importance)

    def _keyword_slot(self, candidate: CandidateLink, section_index: int, plan: _Plan) -> Optional[_Slot]:
        pattern = _keyword_pattern(candidate.keyword)
        text = plan.document.text
        best: Optional[_Slot] = None

        for paragraph_index, paragraph in enumerate(plan.document.sections[section_index].paragraphs):
            capacity = plan.remaining_capacity(section_index, paragraph_index, paragraph)
            if capacity <= 0:
                continue
            usable = [
                m for m in pattern.finditer(text, paragraph.start_offset, paragraph.end_offset)
                if not plan.is_protected(m.start(), m.end()) and not plan.overlaps_planned(m.start(), m.end())
            ]
            if not usable:
                continue
            spaced = [m for m in usable if plan.well_spaced(m.start())]
            if not spaced:
                continue
            score = plan.paragraph_score(capacity, len(usable), paragraph)
            if best is None or score > best.score:
                first = spaced[0]
                best = _Slot(
                    section_index, paragraph_index, first.start(), first.end() - first.start(),
                    first.group(), score, len(usable),
                )
        return best

    def _midpoint(self, paragraph: Paragraph, text: str) -> int:
        """Whitespace position nearest the middle of ``paragraph``, never past its end."""
        middle = paragraph.start_offset + (paragraph.end_offset - paragraph.start_offset) // 2
        forward = WHITESPACE.search(text, middle, paragraph.end_offset)
        if forward:
            return forward.start()
        backward = [m.start() for m in WHITESPACE.finditer(text, paragraph.start_offset, middle)]
        return backward[-1] if backward else paragraph.start_offset

    def _midpoint_slot(self, candidate: CandidateLink, plan: _Plan) -> Optional[_Slot]:
        # Only paragraphs that mention the keyword, where every mention is unusable
        pattern = _keyword_pattern(candidate.keyword)
        text = plan.document.text
        best: Optional[_Slot] = None
        for section_index in self._sections_for(candidate, plan):
            for paragraph_index, paragraph in enumerate(plan.document.sections[section_index].paragraphs):
                capacity = plan.remaining_capacity(section_index, paragraph_index, paragraph)
                if capacity <= 0:
                    continue
                if not pattern.search(text, paragraph.start_offset, paragraph.end_offset):
                    continue
                offset = self._midpoint(paragraph, text)
                if plan.is_protected(offset, offset + 1) or plan.overlaps_planned(offset, offset):
                    continue
                if not plan.well_spaced(offset):
                    continue
                score = plan.paragraph_score(capacity, 0, paragraph)
                if best is None or score > best.score:
                    best = _Slot(section_index, paragraph_index, offset, 0, candidate.keyword, score, 0)
        return best

    def _decide(self, candidate: CandidateLink, plan: _Plan) -> Union[PlacementDecision, PlacementSkip]:
        sections = plan.document.sections
        if not _keyword_pattern(candidate.keyword).search(plan.document.text):
            return PlacementSkip(candidate, "Keyword not found in content")
        for section_index in self._sections_for(candidate, plan):
            slot = self._keyword_slot(candidate, section_index, plan)
            if slot is None:
                continue
            section = sections[section_index]
            exact_case = slot.anchor_text == candidate.keyword
            confidence = min(0.95, 0.5 + 0.3 * section.importance + (0.1 if exact_case else 0.0))
            return PlacementDecision(
                candidate=candidate,
                section_index=section_index,
                section_title=section.title,
                paragraph_index=slot.paragraph_index,
                character_offset=slot.offset,
                length=slot.length,
                anchor_text=slot.anchor_text,
                confidence=round(confidence, 2),
                rationale=(
                    f"Keyword found {slot.occurrences}x in section '{section.title}', "
                    f"paragraph {slot.paragraph_index + 1} (score {slot.score:.1f})"
                ),
            )

        slot = self._midpoint_slot(candidate, plan)
        if slot is None:
            if not self._sections_for(candidate, plan):
                return PlacementSkip(candidate, "No section with remaining link budget")
            return PlacementSkip(candidate, "No eligible paragraph with remaining capacity")
        section = sections[slot.section_index]
        return PlacementDecision(
            candidate=candidate,
            section_index=slot.section_index,
            section_title=section.title,
            paragraph_index=slot.paragraph_index,
            character_offset=slot.offset,
            length=0,
            anchor_text=candidate.keyword,
            confidence=MIDPOINT_CONFIDENCE,
            rationale=(
                f"Low confidence: keyword only appears where it can't be linked; "
                f"inserted at the midpoint of paragraph "
                f"{slot.paragraph_index + 1} in section '{section.title}'"
            ),
        )

    # -------------------------------------------------------------------------
    # Execution and scoring
    # -------------------------------------------------------------------------

    def _apply(self, text: str, decisions: list[PlacementDecision], style: str) -> str:
        for decision in sorted(decisions, key=lambda d: d.character_offset, reverse=True):
            markup = render_link(
                decision.candidate.target_url, decision.anchor_text, decision.candidate.keyword, style
            )
            if decision.length == 0:
                markup = " " + markup
            start, end = decision.character_offset, decision.end_offset
            text = text[:start] + markup + text[end:]
        return text

    def _statistics(self, plan: _Plan) -> DistributionStatistics:
        document = plan.document
        placed = plan.placed
        words = document.word_count

        positions = sorted(plan.word_index(d.character_offset) for d in placed)
        gaps = [b - a for a, b in zip(positions, positions[1:])]
        anchor_types: dict[str, int] = {}
        for decision in placed:
            key = decision.candidate.anchor_text_class.value
            anchor_types[key] = anchor_types.get(key, 0) + 1

        paragraphs = {(d.section_index, d.paragraph_index) for d in placed}
        sections = {d.section_index for d in placed}
        total_paragraphs = len(document.paragraphs)
        return DistributionStatistics(
            total_links_placed=len(placed),
            link_density=round(len(placed) / words * 100, 2) if words else 0.0,
            average_distance_between_links=round(sum(gaps) / len(gaps), 1) if gaps else 0.0,
            paragraphs_with_links=len(paragraphs),
            sections_with_links=len(sections),
            anchor_text_type_distribution=anchor_types,
            paragraph_coverage=round(len(paragraphs) / total_paragraphs, 3) if total_paragraphs else 0.0,
            section_coverage=round(len(sections) / len(document.sections), 3) if document.sections else 0.0,
        )

    def _under_spaced(self, stats: DistributionStatistics, options: PlacementOptions) -> bool:
        return (
            stats.total_links_placed >= 2
            and stats.average_distance_between_links < options.min_distance_between_links_words
        )

    def _score(self, stats: DistributionStatistics, options: PlacementOptions) -> float:
        weights = options.weights
        target = options.preferred_link_density_per_100_words
        score = 100.0
        score -= min(abs(stats.link_density - target) * weights.density_penalty_per_point,
                     weights.density_penalty_cap)
        if stats.sections_with_links < 2:
            score -= weights.section_spread_penalty
        if self._under_spaced(stats, options):
            score -= weights.spacing_penalty
        if stats.paragraphs_with_links > 3:
            score += weights.breadth_bonus
        if stats.sections_with_links > 2:
            score += weights.breadth_bonus
        return round(max(0.0, min(100.0, score)), 1)

    def _recommendations(
        self,
        stats: DistributionStatistics,
        options: PlacementOptions,
        skipped: list[PlacementSkip],
        candidate_count: int,
    ) -> list[str]:
        target = options.preferred_link_density_per_100_words
        recommendations = []
        if stats.link_density > target * 1.5:
            recommendations.append(
                f"Link density is high ({stats.link_density:.1f} per 100 words); consider removing some links"
            )
        elif stats.link_density < target * 0.5:
            recommendations.append(
                f"Link density is low ({stats.link_density:.1f} per 100 words); consider adding more internal links"
            )
        if self._under_spaced(stats, options):
            recommendations.append(
                f"Links are clustered; keep them at least {options.min_distance_between_links_words} words apart"
            )
        if skipped:
            recommendations.append(f"{len(skipped)} candidate links could not be placed; review the skip reasons")
        if candidate_count >= 2 and stats.sections_with_links < 2:
            recommendations.append("Distribute links more evenly across sections")
        return recommendations

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def plan_placement(
        self,
        document: Union[ContentDocument, str],
        candidates: Iterable[Any],
        existing_links: Optional[Iterable[str]] = None,
        options: Optional[PlacementOptions] = None,
        health: Optional[HealthInput] = None,
    ) -> DistributionResult:
        """
        Place candidate links into ``document``.

        Args:
            document: Parsed document, or raw text to parse first
            candidates: CandidateLink objects or dicts with keyword/url/priority
            existing_links: URLs the page already links to
            options: Per-call options, defaults from settings
            health: Known health of target URLs; broken/unknown targets are skipped

        Returns:
            DistributionResult with one decision or skip per candidate
        """
        if isinstance(document, str):
            document = self.parser.parse_structure(document)
        options = options or PlacementOptions.from_settings(self.settings)
        candidate_list, skipped = self._coerce(candidates)
        total_candidates = len(candidate_list) + len(skipped)
        statuses = _health_map(health)
        plan = _Plan(document, existing_links or (), options)

        # sorted() is stable, so equal priorities keep caller order
        for candidate in sorted(candidate_list, key=lambda c: -c.priority):
            reason = self._health_skip(candidate, statuses, options) or \
                self._limit_skip(candidate, plan, total_candidates)
            if reason:
                skipped.append(PlacementSkip(candidate, reason))
                continue

            outcome = self._decide(candidate, plan)
            if isinstance(outcome, PlacementSkip):
                skipped.append(outcome)
                continue

            plan.placed.append(outcome)
            plan.section_budget[outcome.section_index] -= 1
            key = (outcome.section_index, outcome.paragraph_index)
            plan.paragraph_planned[key] = plan.paragraph_planned.get(key, 0) + 1
            plan.placed_targets.add(normalize_url(candidate.target_url))
            plan.placed_anchors.add(candidate.keyword.lower())
            if candidate.anchor_text_class == AnchorTextClass.EXACT:
                plan.exact_placed += 1

        placed = sorted(plan.placed, key=lambda d: d.character_offset)
        plan.placed = placed
        stats = self._statistics(plan)
        result = DistributionResult(
            optimized_content=self._apply(document.text, placed, options.link_style),
            placed=placed,
            skipped=skipped,
            distribution_score=self._score(stats, options),
            recommendations=self._recommendations(stats, options, skipped, total_candidates),
            statistics=stats,
        )
        logger.info(
            "Placed {} of {} candidate links (score {})",
            len(placed),
            total_candidates,
            result.distribution_score,
        )
        return result

    def place_links_simple(
        self,
        content: str,
        links: Iterable[tuple[str, str]],
        options: Optional[PlacementOptions] = None,
    ) -> DistributionResult:
        """Place ``(keyword, url)`` pairs, earlier pairs taking priority.

        All pairs are exact-match anchors, so anchor balancing is off unless
        ``options`` turns it back on.
        """
        pairs = list(links)
        if options is None:
            options = PlacementOptions.from_settings(self.settings, balance_anchor_text_types=False)
        candidates = [
            CandidateLink(keyword=keyword, target_url=url, priority=len(pairs) - index)
            for index, (keyword, url) in enumerate(pairs)
        ]
        return self.plan_placement(content, candidates, options=options)
