"""Persisted link health, the backing table of ``SqlHealthCache``."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, Text

from ..database import Base
from .health import LinkHealthRecord, LinkStatus


class StoredLinkHealth(Base):
    """Latest known health of one URL."""

    __tablename__ = "link_health_records"

    url = Column(String(2048), primary_key=True)
    status = Column(String(20), nullable=False, index=True)
    status_code = Column(Integer)
    redirect_target = Column(String(2048))
    response_time_ms = Column(Float)
    error = Column(Text)
    suggestions = Column(JSON, default=list)

    last_checked_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<StoredLinkHealth(url='{self.url}', status='{self.status}')>"

    def update_from(self, record: LinkHealthRecord) -> None:
        self.status = record.status.value
        self.status_code = record.status_code
        self.redirect_target = record.redirect_target
        self.response_time_ms = record.response_time_ms
        self.error = record.error
        self.suggestions = list(record.suggestions)
        self.last_checked_at = record.last_checked_at

    def to_record(self) -> LinkHealthRecord:
        return LinkHealthRecord(
            url=self.url,
            status=LinkStatus(self.status),
            status_code=self.status_code,
            redirect_target=self.redirect_target,
            response_time_ms=self.response_time_ms,
            last_checked_at=self.last_checked_at or datetime.utcnow(),
            suggestions=tuple(self.suggestions or ()),
            error=self.error,
        )
