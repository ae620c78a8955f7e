"""Result cache backed by async SQLAlchemy.

Provides:
- cache_key: Content hash identifying a single-file submission
- ResultCache: TTL-bounded store of AnalysisResults
"""

import hashlib
import time
from datetime import datetime, timezone
from typing import Callable

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from codeguard.core.models import AnalysisResult

from .database import create_session_factory, get_session, init_database, shutdown
from .models import CachedAnalysis

logger = structlog.get_logger()


def cache_key(endpoint: str, mode: str, language: str, code: str) -> str:
    """SHA-256 over the fields that determine a backend result.

    Example:
        >>> len(cache_key("https://api.example.com", "full", "python", "print(1)"))
        64
    """
    digest = hashlib.sha256()
    for part in (endpoint.rstrip("/"), mode, language, code):
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


class ResultCache:
    """Stores analysis results for repeated submissions.

    Args:
        factory: Session factory bound to an initialized engine
        ttl: Entry lifetime in seconds
        clock: Epoch-seconds time source

    Example:
        >>> cache = await ResultCache.open("sqlite+aiosqlite:///codeguard.db")
        >>> await cache.put(key, result, endpoint=endpoint, mode="full")
        >>> hit = await cache.get(key)
    """

    def __init__(
        self,
        factory: async_sessionmaker[AsyncSession],
        ttl: float = 1800.0,
        clock: Callable[[], float] = time.time,
        engine: AsyncEngine | None = None,
    ):
        self._factory = factory
        self._engine = engine
        self.ttl = ttl
        self._clock = clock

    @classmethod
    async def open(cls, db_url: str, ttl: float = 1800.0, clock: Callable[[], float] = time.time) -> "ResultCache":
        """Create the engine and tables, and return a cache that owns them."""
        engine = await init_database(db_url)
        return cls(create_session_factory(engine), ttl=ttl, clock=clock, engine=engine)

    async def close(self) -> None:
        if self._engine is not None:
            await shutdown(self._engine)
            self._engine = None

    async def get(self, key: str) -> AnalysisResult | None:
        """Return the cached result, or None when missing or expired.

        Expired entries are deleted on read.
        """
        async with get_session(self._factory) as session:
            entry = await session.get(CachedAnalysis, key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                await session.delete(entry)
                logger.debug("cache_expired", key=key[:12])
                return None
            result = AnalysisResult.model_validate_json(entry.result)

        logger.debug("cache_hit", key=key[:12])
        return result.model_copy(update={"cached": True})

    async def put(
        self,
        key: str,
        result: AnalysisResult,
        *,
        endpoint: str,
        mode: str,
        language: str = "",
    ) -> None:
        """Insert or replace an entry."""
        now = self._clock()
        async with get_session(self._factory) as session:
            await session.merge(
                CachedAnalysis(
                    cache_key=key,
                    endpoint=endpoint.rstrip("/"),
                    language=language,
                    analysis_mode=mode,
                    result=result.model_dump_json(),
                    created_at=datetime.fromtimestamp(now, tz=timezone.utc).replace(tzinfo=None),
                    expires_at=now + self.ttl,
                )
            )
        logger.debug("cache_stored", key=key[:12], ttl=self.ttl)

    async def invalidate(self, key: str) -> bool:
        """Delete one entry. Returns True if it existed."""
        async with get_session(self._factory) as session:
            result = await session.execute(delete(CachedAnalysis).where(CachedAnalysis.cache_key == key))
            return result.rowcount > 0

    async def clear(self, endpoint: str | None = None) -> int:
        """Delete all entries, or only those for ``endpoint``.

        Returns:
            Number of entries removed
        """
        stmt = delete(CachedAnalysis)
        if endpoint is not None:
            stmt = stmt.where(CachedAnalysis.endpoint == endpoint.rstrip("/"))
        async with get_session(self._factory) as session:
            result = await session.execute(stmt)
            removed = result.rowcount
        logger.info("cache_cleared", removed=removed, endpoint=endpoint)
        return removed

    async def purge_expired(self) -> int:
        async with get_session(self._factory) as session:
            result = await session.execute(
                delete(CachedAnalysis).where(CachedAnalysis.expires_at <= self._clock())
            )
            return result.rowcount

    async def size(self) -> int:
        async with get_session(self._factory) as session:
            rows = await session.execute(select(CachedAnalysis.cache_key))
            return len(rows.all())
