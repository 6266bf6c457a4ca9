"""Portfolio, project, media and job tables."""

import uuid
from typing import Optional, List, Dict
from datetime import datetime
from sqlmodel import SQLModel, Field, JSON

from .base import AnalyzableBase, BaseCreatedUpdated, JobStatus, UTCDateTime, utc_now


class Creator(BaseCreatedUpdated, table=True):
    __tablename__ = "creators"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True)
    primary_role: Optional[List[str]] = Field(default=None, sa_type=JSON)
    bio: Optional[str] = None


class Portfolio(AnalyzableBase, table=True):
    __tablename__ = "portfolios"

    id: Optional[int] = Field(default=None, primary_key=True)
    creator_id: Optional[int] = Field(default=None, foreign_key="creators.id", index=True)


class Project(AnalyzableBase, table=True):
    __tablename__ = "projects"

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: int = Field(foreign_key="portfolios.id", index=True)
    creator_id: Optional[int] = Field(default=None, foreign_key="creators.id", index=True)
    title: str
    description: Optional[str] = None


class Image(AnalyzableBase, table=True):
    __tablename__ = "images"

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    url: Optional[str] = None
    # width (as string key) -> url
    resolutions: Optional[Dict[str, str]] = Field(default=None, sa_type=JSON)
    order: int = Field(default=0)


class Video(AnalyzableBase, table=True):
    __tablename__ = "videos"

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    url: Optional[str] = None
    vimeo_id: Optional[str] = None
    youtube_id: Optional[str] = None


class AnalysisJob(SQLModel, table=True):
    """Progress record for one portfolio or project analysis request."""
    __tablename__ = "analysis_jobs"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    portfolio_id: Optional[int] = Field(default=None, foreign_key="portfolios.id", index=True)
    project_id: Optional[int] = Field(default=None, foreign_key="projects.id", index=True)
    creator_id: Optional[int] = Field(default=None, index=True)
    status: JobStatus = Field(default=JobStatus.PENDING, index=True)
    progress: float = Field(default=0.0)
    status_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    started_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
