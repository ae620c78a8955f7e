"""SQLAlchemy ORM models for the local result cache.

Models:
- CachedAnalysis: Serialized AnalysisResult keyed by a content hash
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class CachedAnalysis(Base):
    """Cached backend result.

    ``cache_key`` is the SHA-256 of (endpoint, mode, language, code), so
    identical submissions to the same backend share an entry. Expiry is
    checked on read against ``expires_at`` (epoch seconds).
    """
    __tablename__ = "cached_analyses"

    cache_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    endpoint: Mapped[str] = mapped_column(String(2048), index=True, nullable=False)
    language: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    analysis_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    result: Mapped[str] = mapped_column(Text, nullable=False)  # AnalysisResult JSON
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, index=True, nullable=False)
