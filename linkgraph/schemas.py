"""Boundary validation for untyped payloads handed to the engine."""

from typing import Any, List, Optional

import pydantic
from dateutil import parser as date_parser
from pydantic import BaseModel, Field, field_validator

from .exceptions import ValidationError
from .models.placement import AnchorTextClass, CandidateLink
from .models.sitemap import ChangeFrequency, SitemapEntry, SitemapImage, SitemapVideo
from .utils.urls import is_http_url


class CandidateLinkPayload(BaseModel):
    """A candidate link as supplied by the caller."""

    keyword: str = Field(min_length=1)
    url: str
    priority: int = 5
    anchor_text_class: AnchorTextClass = AnchorTextClass.EXACT
    target_section: Optional[str] = None

    @field_validator("keyword")
    @classmethod
    def strip_keyword(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("keyword must not be blank")
        return value

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        if not is_http_url(value):
            raise ValueError(f"not an http(s) URL: {value}")
        return value.strip()

    def to_candidate(self) -> CandidateLink:
        return CandidateLink(
            keyword=self.keyword,
            target_url=self.url,
            priority=self.priority,
            anchor_text_class=self.anchor_text_class,
            target_section=self.target_section,
        )


class SitemapImagePayload(BaseModel):
    loc: str
    caption: Optional[str] = None
    title: Optional[str] = None
    license: Optional[str] = None


class SitemapVideoPayload(BaseModel):
    thumbnail_loc: str = ""
    title: str = ""
    description: str = ""
    content_loc: Optional[str] = None
    player_loc: Optional[str] = None
    duration: Optional[int] = None
    publication_date: Optional[str] = None

    @field_validator("duration", mode="before")
    @classmethod
    def normalize_duration(cls, value: Any) -> Optional[int]:
        # Durations are whole seconds; anything else is ignored, not fatal
        if value is None or value == "":
            return None
        try:
            return int(str(value).strip())
        except ValueError:
            return None


class SitemapUrlPayload(BaseModel):
    """One ``<url>`` element of a urlset, read as plain strings."""

    loc: str
    lastmod: Optional[str] = None
    changefreq: Optional[ChangeFrequency] = None
    priority: Optional[float] = None
    images: List[SitemapImagePayload] = Field(default_factory=list)
    videos: List[SitemapVideoPayload] = Field(default_factory=list)

    @field_validator("loc")
    @classmethod
    def check_loc(cls, value: str) -> str:
        value = value.strip()
        if not is_http_url(value):
            raise ValueError(f"invalid URL: {value}")
        return value

    @field_validator("lastmod", mode="before")
    @classmethod
    def normalize_lastmod(cls, value: Any) -> Optional[str]:
        # Unparseable dates are dropped rather than failing the entry
        if not value:
            return None
        try:
            return date_parser.isoparse(str(value).strip()).isoformat()
        except (ValueError, OverflowError):
            return None

    @field_validator("changefreq", mode="before")
    @classmethod
    def normalize_changefreq(cls, value: Any) -> Optional[str]:
        if not value:
            return None
        value = str(value).strip().lower()
        return value if value in {freq.value for freq in ChangeFrequency} else None

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            priority = float(value)
        except (TypeError, ValueError):
            return None
        return priority if 0.0 <= priority <= 1.0 else None

    def to_entry(self) -> SitemapEntry:
        return SitemapEntry(
            location=self.loc,
            last_modified=self.lastmod,
            change_frequency=self.changefreq,
            priority=self.priority,
            images=tuple(SitemapImage(**image.model_dump()) for image in self.images),
            videos=tuple(SitemapVideo(**video.model_dump()) for video in self.videos),
        )


class ScrapedPagePayload(BaseModel):
    """Page content as delivered by a content-extraction service."""

    url: str = ""
    title: Optional[str] = None
    markdown: Optional[str] = None
    content: Optional[str] = None
    text: Optional[str] = None

    @property
    def body(self) -> str:
        return self.markdown or self.content or self.text or ""


def _describe(exc: pydantic.ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )


def validate_candidate(payload: Any) -> CandidateLink:
    """Validate one caller-supplied candidate.

    ``CandidateLink`` instances pass through; dicts (``keyword``, ``url``,
    ``priority``, ``anchor_text_class``, ``target_section``) are validated.

    Raises:
        ValidationError: If the payload is malformed.
    """
    if isinstance(payload, CandidateLink):
        if not payload.keyword.strip() or not is_http_url(payload.target_url):
            raise ValidationError("Candidate needs a keyword and an http(s) target URL", payload.target_url)
        return payload
    try:
        return CandidateLinkPayload.model_validate(payload).to_candidate()
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid candidate: {_describe(e)}", str(payload)) from e


def parse_scraped_page(payload: Any) -> ScrapedPagePayload:
    try:
        return ScrapedPagePayload.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid page payload: {_describe(e)}") from e
