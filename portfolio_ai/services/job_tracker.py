from typing import Optional

from portfolio_ai.core.exceptions import InvalidJobTransitionException, ResourceNotFoundException
from portfolio_ai.core.logging_config import get_logger
from portfolio_ai.domain.analysis.results import JobStatusView
from portfolio_ai.models import AnalysisJob, JobStatus, utc_now
from portfolio_ai.repositories.analysis_store import AnalysisStore
from portfolio_ai.services.prometheus_metrics import get_metrics

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

# Highest progress a job may report before it is completed
MAX_OPEN_PROGRESS = 99.0


class JobTracker:
    """Persistent progress records for portfolio and project analysis"""

    def __init__(self, store: AnalysisStore):
        self.store = store

    @staticmethod
    def progress_for(completed_steps: int, total_steps: int) -> float:
        """Percent complete, where a portfolio has one step per project plus synthesis"""
        if total_steps <= 0:
            return 0.0
        return min(100.0, max(0.0, completed_steps / total_steps * 100))

    def create(
        self,
        portfolio_id: Optional[int] = None,
        project_id: Optional[int] = None,
        creator_id: Optional[int] = None,
        message: Optional[str] = None
    ) -> AnalysisJob:
        job = self.store.add(AnalysisJob(
            portfolio_id=portfolio_id,
            project_id=project_id,
            creator_id=creator_id,
            status=JobStatus.PENDING,
            progress=0.0,
            status_message=message or "Analysis queued"
        ))
        logger.info(f"Created analysis job {job.id}", portfolio_id=portfolio_id, project_id=project_id)
        return job

    def get(self, job_id: str) -> AnalysisJob:
        job = self.store.get_job(job_id)
        if job is None:
            raise ResourceNotFoundException("AnalysisJob", job_id)
        return job

    def get_status(self, job_id: str) -> JobStatusView:
        return JobStatusView.from_job(self.get(job_id))

    def update(
        self,
        job_id: str,
        status: Optional[JobStatus] = None,
        progress: Optional[float] = None,
        message: Optional[str] = None
    ) -> AnalysisJob:
        """
        Apply a status/progress/message change.

        Progress never decreases and stays below 100 until the job completes.
        Terminal jobs reject every update.
        """
        job = self.get(job_id)
        current = JobStatus(job.status)
        target = JobStatus(status) if status is not None else current

        if current.is_terminal:
            raise InvalidJobTransitionException(job_id, current.value, target.value)
        if target != current and target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidJobTransitionException(job_id, current.value, target.value)

        now = utc_now()
        if target == JobStatus.PROCESSING and job.started_at is None:
            job.started_at = now

        if target == JobStatus.COMPLETED:
            job.progress = 100.0
        elif progress is not None:
            job.progress = min(MAX_OPEN_PROGRESS, max(job.progress, float(progress)))

        if target.is_terminal:
            job.completed_at = now
            get_metrics().record_job_finished(target.value)

        job.status = target
        if message is not None:
            job.status_message = message

        job = self.store.save_job(job)
        logger.debug(f"Job {job_id}: {current.value} -> {target.value} ({job.progress:.1f}%)")
        return job

    def ensure_processing(self, job_id: str, message: Optional[str] = None) -> AnalysisJob:
        """Move a pending job to processing; a processing job is left as is"""
        job = self.get(job_id)
        if job.status == JobStatus.PENDING:
            return self.update(job_id, status=JobStatus.PROCESSING, message=message or "Analysis in progress")
        if job.status != JobStatus.PROCESSING:
            raise InvalidJobTransitionException(job_id, JobStatus(job.status).value, JobStatus.PROCESSING.value)
        return job

    def complete(self, job_id: str, message: str) -> AnalysisJob:
        logger.info(f"Job {job_id} completed: {message}")
        return self.update(job_id, status=JobStatus.COMPLETED, message=message)

    def fail(self, job_id: str, message: str) -> Optional[AnalysisJob]:
        """Mark the job failed unless it already reached a terminal state"""
        job = self.store.get_job(job_id)
        if job is None:
            logger.warning(f"Cannot fail missing job {job_id}")
            return None
        if JobStatus(job.status).is_terminal:
            logger.warning(f"Job {job_id} already {JobStatus(job.status).value}, not marking failed: {message}")
            return job

        logger.warning(f"Job {job_id} failed: {message}")
        return self.update(job_id, status=JobStatus.FAILED, message=message)

    def find_active_job(
        self,
        portfolio_id: Optional[int] = None,
        project_id: Optional[int] = None
    ) -> Optional[AnalysisJob]:
        return self.store.find_active_job(portfolio_id=portfolio_id, project_id=project_id)

    def last_completed_job(self, portfolio_id: int) -> Optional[AnalysisJob]:
        return self.store.last_completed_job(portfolio_id)
