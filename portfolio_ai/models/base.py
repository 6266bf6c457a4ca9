"""Base models and enums for the portfolio analysis service."""

from sqlmodel import SQLModel, Field, JSON
from sqlalchemy import DateTime, TypeDecorator
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps on every backend.

    SQLite drops tzinfo on the way back, so results are re-tagged as UTC.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.PROCESSING)


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class BaseCreatedUpdated(SQLModel):
    """Base model for mutable tables (created_at + updated_at)."""
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)


class AnalyzableBase(BaseCreatedUpdated):
    """Analysis fields shared by media items, projects and portfolios.

    summary and embedding are written together: both set or both null.
    """
    analysis_status: AnalysisStatus = Field(default=AnalysisStatus.PENDING, index=True)
    summary: Optional[str] = None
    embedding: Optional[List[float]] = Field(default=None, sa_type=JSON)
    analysis_error: Optional[str] = None

    @property
    def is_analyzed(self) -> bool:
        return bool(self.summary) and self.embedding is not None
