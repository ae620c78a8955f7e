"""Async SQLAlchemy persistence for the local result cache."""

from .cache import ResultCache, cache_key
from .database import create_session_factory, get_session, init_database, shutdown
from .models import Base, CachedAnalysis

__all__ = [
    "ResultCache",
    "cache_key",
    "create_session_factory",
    "get_session",
    "init_database",
    "shutdown",
    "Base",
    "CachedAnalysis",
]
