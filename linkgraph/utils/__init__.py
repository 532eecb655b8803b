"""Utility modules for the link graph engine."""

from .health_cache import HealthCache, InMemoryHealthCache, SqlHealthCache
from .retry import RetryPolicy, health_policy, sitemap_policy
from .robots_checker import RobotsChecker

__all__ = [
    "HealthCache",
    "InMemoryHealthCache",
    "SqlHealthCache",
    "RetryPolicy",
    "health_policy",
    "sitemap_policy",
    "RobotsChecker",
]
