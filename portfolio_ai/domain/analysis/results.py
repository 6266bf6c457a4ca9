from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import datetime

from portfolio_ai.models import AnalysisJob, AnalysisStatus, JobStatus, MediaKind

# How a bounded aggregation wait ended
ExitReason = Literal["complete", "sufficient", "settled", "patience", "forced", "timeout", "skipped"]


class MediaAnalysisResult(BaseModel):
    """Outcome of analyzing one image or video"""
    kind: MediaKind
    media_id: int
    status: AnalysisStatus
    skipped: bool = False
    error: Optional[str] = None


class ProjectAnalysisResult(BaseModel):
    """Outcome of one project aggregation"""
    project_id: int
    status: AnalysisStatus
    media_total: int = 0
    media_analyzed: int = 0
    media_failed: int = 0
    media_unfinished: int = 0
    attempts: int = 0
    exit_reason: Optional[ExitReason] = None
    error: Optional[str] = None


class PortfolioAnalysisResult(BaseModel):
    """Outcome of one portfolio aggregation"""
    portfolio_id: int
    job_id: str
    status: JobStatus
    projects_total: int = 0
    projects_analyzed: int = 0
    exit_reason: Optional[ExitReason] = None
    message: Optional[str] = None


class JobStatusView(BaseModel):
    """Public view of an analysis job"""
    job_id: str
    status: JobStatus
    progress: float = Field(ge=0.0, le=100.0)
    message: Optional[str] = None
    portfolio_id: Optional[int] = None
    project_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: AnalysisJob) -> "JobStatusView":
        return cls(
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            message=job.status_message,
            portfolio_id=job.portfolio_id,
            project_id=job.project_id,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class AnalysisEligibility(BaseModel):
    """Whether a portfolio may be (re)analyzed now"""
    allowed: bool
    reason: Optional[str] = None
    next_available_at: Optional[datetime] = None
    active_job_id: Optional[str] = None


class PortfolioAnalysisResults(BaseModel):
    """Current portfolio summary plus any job still running"""
    portfolio_id: int
    has_analysis: bool
    analysis: Optional[str] = None
    analysis_status: AnalysisStatus
    analysis_error: Optional[str] = None
    active_job: Optional[JobStatusView] = None
