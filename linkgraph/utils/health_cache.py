"""Last known health per URL, shared between check cycles."""

import threading
from collections import OrderedDict
from typing import Optional, Protocol, runtime_checkable

from loguru import logger
from sqlalchemy.engine import Engine

from ..config import get_settings
from ..database import get_db_session, get_engine, get_session_factory, init_db
from ..models.health import LinkHealthRecord
from ..models.stored import StoredLinkHealth


@runtime_checkable
class HealthCache(Protocol):
    """Anything that can remember the latest record for a URL."""

    def get(self, url: str) -> Optional[LinkHealthRecord]:
        ...

    def put(self, url: str, record: LinkHealthRecord) -> None:
        ...


class InMemoryHealthCache:
    """
    Bounded LRU cache of health records.

    Writes are last-writer-wins; the least recently used URL is evicted
    once ``max_size`` is exceeded.
    """

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size or get_settings().health_cache_size
        self._records: "OrderedDict[str, LinkHealthRecord]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, url: str) -> Optional[LinkHealthRecord]:
        with self._lock:
            record = self._records.get(url)
            if record is not None:
                self._records.move_to_end(url)
            return record

    def put(self, url: str, record: LinkHealthRecord) -> None:
        with self._lock:
            self._records[url] = record
            self._records.move_to_end(url)
            while len(self._records) > self.max_size:
                evicted, _ = self._records.popitem(last=False)
                logger.debug("Evicted {} from health cache", evicted)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, url: str) -> bool:
        return url in self._records


class SqlHealthCache:
    """Health cache persisted in the ``link_health_records`` table."""

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        self.engine = engine or get_engine(database_url)
        init_db(self.engine)
        self._session_factory = get_session_factory(self.engine)

    def get(self, url: str) -> Optional[LinkHealthRecord]:
        with get_db_session(self._session_factory) as session:
            row = session.get(StoredLinkHealth, url)
            return row.to_record() if row else None

    def put(self, url: str, record: LinkHealthRecord) -> None:
        with get_db_session(self._session_factory) as session:
            row = session.get(StoredLinkHealth, url)
            if row is None:
                row = StoredLinkHealth(url=url)
                session.add(row)
            row.update_from(record)

    def all(self) -> list[LinkHealthRecord]:
        with get_db_session(self._session_factory) as session:
            rows = session.query(StoredLinkHealth).order_by(StoredLinkHealth.url).all()
            return [row.to_record() for row in rows]
