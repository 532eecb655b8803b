"""Configuration management using environment variables."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # HTTP
    user_agent: str = Field(
        default="LinkGraphBot/1.0 (+sitemap and link health)",
        alias="LINKGRAPH_USER_AGENT"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        alias="LINKGRAPH_REQUEST_TIMEOUT"
    )

    # Sitemap crawling
    sitemap_max_urls: int = Field(
        default=10000,
        alias="LINKGRAPH_SITEMAP_MAX_URLS"
    )
    sitemap_max_depth: int = Field(
        default=5,
        alias="LINKGRAPH_SITEMAP_MAX_DEPTH"
    )
    sitemap_timeout_seconds: float = Field(
        default=30.0,
        alias="LINKGRAPH_SITEMAP_TIMEOUT"
    )
    sitemap_max_concurrent: int = Field(
        default=3,
        alias="LINKGRAPH_SITEMAP_MAX_CONCURRENT"
    )

    # Link health checks
    max_concurrent_checks: int = Field(
        default=5,
        alias="LINKGRAPH_MAX_CONCURRENT"
    )
    retry_attempts: int = Field(
        default=2,
        alias="LINKGRAPH_RETRY_ATTEMPTS"
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        alias="LINKGRAPH_RETRY_DELAY"
    )
    slow_link_threshold_ms: float = Field(
        default=5000.0,
        alias="LINKGRAPH_SLOW_LINK_THRESHOLD_MS"
    )
    batch_delay_seconds: float = Field(
        default=0.1,
        alias="LINKGRAPH_BATCH_DELAY"
    )
    health_cache_size: int = Field(
        default=10000,
        alias="LINKGRAPH_HEALTH_CACHE_SIZE"
    )

    # Storage for the optional SQL-backed health cache
    database_url: str = Field(
        default="sqlite:///data/linkgraph.db",
        alias="DATABASE_URL"
    )

    # Placement defaults
    words_per_link: int = Field(
        default=50,
        alias="LINKGRAPH_WORDS_PER_LINK"
    )
    max_links_per_page: int = Field(
        default=100,
        alias="LINKGRAPH_MAX_LINKS_PER_PAGE"
    )
    max_links_per_paragraph: int = Field(
        default=2,
        alias="LINKGRAPH_MAX_LINKS_PER_PARAGRAPH"
    )
    min_distance_between_links_words: int = Field(
        default=50,
        alias="LINKGRAPH_MIN_LINK_DISTANCE_WORDS"
    )
    preferred_link_density: float = Field(
        default=2.0,
        alias="LINKGRAPH_LINK_DENSITY"
    )

    # Distribution score weights
    density_penalty_per_point: float = Field(
        default=5.0,
        alias="LINKGRAPH_DENSITY_PENALTY"
    )
    density_penalty_cap: float = Field(
        default=30.0,
        alias="LINKGRAPH_DENSITY_PENALTY_CAP"
    )
    section_spread_penalty: float = Field(
        default=20.0,
        alias="LINKGRAPH_SECTION_SPREAD_PENALTY"
    )
    spacing_penalty: float = Field(
        default=15.0,
        alias="LINKGRAPH_SPACING_PENALTY"
    )
    breadth_bonus: float = Field(
        default=10.0,
        alias="LINKGRAPH_BREADTH_BONUS"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"


def get_settings() -> Settings:
    """Get engine settings."""
    return Settings()


def configure_logging(level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """Route loguru output to stderr (and optionally a rotating file).

    Applications call this once at start-up; the library itself only emits
    records through ``logger``.
    """
    level = level or get_settings().log_level
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="{time:HH:mm:ss} | {level:<8} | {name}:{function} - {message}",
    )
    if log_file is not None:
        logger.add(log_file, rotation="10 MB", level=level, retention="30 days")
