"""Parsed document structure used by the placement planner."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Paragraph:
    """A blank-line separated block of a section body.

    Offsets are character positions in the full document text, so
    ``document.text[start_offset:end_offset] == text``.
    """
    text: str
    start_offset: int
    end_offset: int
    word_count: int = 0
    existing_link_count: int = 0
    link_capacity: int = 0
    is_code: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "word_count": self.word_count,
            "existing_link_count": self.existing_link_count,
            "link_capacity": self.link_capacity,
        }


@dataclass
class Section:
    title: str
    level: int
    start_offset: int
    end_offset: int
    importance: float = 0.5
    paragraphs: list[Paragraph] = field(default_factory=list)

    @property
    def word_count(self) -> int:
        return sum(p.word_count for p in self.paragraphs)

    @property
    def link_capacity(self) -> int:
        return sum(p.link_capacity for p in self.paragraphs)

    @property
    def existing_link_count(self) -> int:
        return sum(p.existing_link_count for p in self.paragraphs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "level": self.level,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "importance": self.importance,
            "paragraphs": [p.to_dict() for p in self.paragraphs],
        }


@dataclass
class ContentDocument:
    text: str
    sections: list[Section] = field(default_factory=list)
    url: str = ""

    @property
    def paragraphs(self) -> list[Paragraph]:
        return [p for section in self.sections for p in section.paragraphs]

    @property
    def word_count(self) -> int:
        return sum(section.word_count for section in self.sections)

    @property
    def existing_link_count(self) -> int:
        return sum(section.existing_link_count for section in self.sections)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "word_count": self.word_count,
            "sections": [section.to_dict() for section in self.sections],
        }


@dataclass(frozen=True)
class ExtractedLink:
    """A link found in a document body."""
    url: str
    anchor_text: str
    start_offset: int
    kind: str = "markdown"
