"""Database connection and session management."""

from contextlib import contextmanager
from typing import Optional

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import DATA_DIR, get_settings


Base = declarative_base()


def get_engine(database_url: Optional[str] = None) -> Engine:
    """Create database engine."""
    db_url = database_url or get_settings().database_url

    # Relative SQLite paths are resolved against the project root
    if db_url.startswith("sqlite:///") and not db_url.startswith("sqlite:////"):
        db_path = db_url.replace("sqlite:///", "")
        full_path = DATA_DIR.parent / db_path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        db_url = f"sqlite:///{full_path}"

    return create_engine(
        db_url,
        echo=False,
        connect_args={"check_same_thread": False} if "sqlite" in db_url else {}
    )


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Create session factory."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine or get_engine())


@contextmanager
def get_db_session(session_factory: Optional[sessionmaker] = None) -> Session:
    """Context manager for database sessions."""
    SessionLocal = session_factory or get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None) -> Engine:
    """Initialize the database (create all tables)."""
    # Import models to register them with Base
    from .models import stored  # noqa: F401

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized at: {}", engine.url)
    return engine

