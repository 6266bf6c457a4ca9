"""Models package for the portfolio analysis service."""

# Import base classes and enums
from .base import (
    AnalysisStatus,
    AnalyzableBase,
    BaseCreatedUpdated,
    JobStatus,
    MediaKind,
    UTCDateTime,
    as_utc,
    utc_now,
)

# Import tables (for metadata registration)
from .portfolio import (
    AnalysisJob,
    Creator,
    Image,
    Portfolio,
    Project,
    Video,
)

__all__ = [
    "AnalysisStatus",
    "AnalyzableBase",
    "BaseCreatedUpdated",
    "JobStatus",
    "MediaKind",
    "UTCDateTime",
    "as_utc",
    "utc_now",
    "AnalysisJob",
    "Creator",
    "Image",
    "Portfolio",
    "Project",
    "Video",
]
