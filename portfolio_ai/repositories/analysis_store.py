"""
Analysis Store

Single-row reads and writes for media, projects, portfolios and analysis
jobs. Every write is keyed by id and committed on its own, so concurrent
pipeline tasks never share a transaction.
"""

from typing import Any, List, Optional, Tuple, Type, Union
from sqlmodel import SQLModel, select

from portfolio_ai.core.logging_config import get_logger
from portfolio_ai.db.session import DatabaseSession
from portfolio_ai.models import (
    AnalysisJob, AnalysisStatus, Creator, Image, JobStatus, MediaKind,
    Portfolio, Project, Video, utc_now,
)

logger = get_logger(__name__)

MediaRecord = Union[Image, Video]

MEDIA_MODELS = {
    MediaKind.IMAGE: Image,
    MediaKind.VIDEO: Video,
}


class AnalysisStore:
    """Repository over the portfolio tables"""

    def __init__(self, db: DatabaseSession):
        self.db = db

    def add(self, record: SQLModel) -> SQLModel:
        """Insert a row and return it with generated fields populated"""
        with self.db.session() as session:
            session.add(record)
            session.flush()
            session.refresh(record)
        return record

    def _get(self, model: Type[SQLModel], record_id: Any) -> Optional[Any]:
        with self.db.read_session() as session:
            return session.get(model, record_id)

    def _update(self, model: Type[SQLModel], record_id: Any, **fields) -> bool:
        with self.db.session() as session:
            record = session.get(model, record_id)
            if record is None:
                logger.warning(f"{model.__name__} {record_id} not found for update")
                return False

            for key, value in fields.items():
                setattr(record, key, value)
            record.updated_at = utc_now()
            session.add(record)
            return True

    # Media

    def get_media(self, kind: MediaKind, media_id: int) -> Optional[MediaRecord]:
        return self._get(MEDIA_MODELS[kind], media_id)

    def update_media(self, kind: MediaKind, media_id: int, **fields) -> bool:
        return self._update(MEDIA_MODELS[kind], media_id, **fields)

    def list_project_media(self, project_id: int) -> List[Tuple[MediaKind, MediaRecord]]:
        """Media of a project in stable order: images by position, then videos by creation"""
        with self.db.read_session() as session:
            images = session.exec(
                select(Image)
                .where(Image.project_id == project_id)
                .order_by(Image.order, Image.id)
            ).all()
            videos = session.exec(
                select(Video)
                .where(Video.project_id == project_id)
                .order_by(Video.created_at, Video.id)
            ).all()

        return (
            [(MediaKind.IMAGE, image) for image in images]
            + [(MediaKind.VIDEO, video) for video in videos]
        )

    # Projects

    def get_project(self, project_id: int) -> Optional[Project]:
        return self._get(Project, project_id)

    def update_project(self, project_id: int, **fields) -> bool:
        return self._update(Project, project_id, **fields)

    def list_portfolio_projects(self, portfolio_id: int) -> List[Project]:
        with self.db.read_session() as session:
            return list(session.exec(
                select(Project)
                .where(Project.portfolio_id == portfolio_id)
                .order_by(Project.id)
            ).all())

    def list_analyzed_projects(self, portfolio_id: int) -> List[Project]:
        """Projects of a portfolio that carry a summary and an embedding"""
        with self.db.read_session() as session:
            projects = session.exec(
                select(Project)
                .where(Project.portfolio_id == portfolio_id)
                .where(Project.summary.is_not(None))
                .order_by(Project.id)
            ).all()
        return [project for project in projects if project.is_analyzed]

    # Portfolios and creators

    def get_portfolio(self, portfolio_id: int) -> Optional[Portfolio]:
        return self._get(Portfolio, portfolio_id)

    def update_portfolio(self, portfolio_id: int, **fields) -> bool:
        return self._update(Portfolio, portfolio_id, **fields)

    def get_creator(self, creator_id: int) -> Optional[Creator]:
        return self._get(Creator, creator_id)

    # Jobs

    def get_job(self, job_id: str) -> Optional[AnalysisJob]:
        return self._get(AnalysisJob, job_id)

    def save_job(self, job: AnalysisJob) -> AnalysisJob:
        job.updated_at = utc_now()
        with self.db.session() as session:
            merged = session.merge(job)
            session.flush()
            session.refresh(merged)
        return merged

    def find_active_job(
        self,
        portfolio_id: Optional[int] = None,
        project_id: Optional[int] = None
    ) -> Optional[AnalysisJob]:
        """Most recent pending or processing job for a portfolio or a project"""
        query = select(AnalysisJob).where(
            AnalysisJob.status.in_([status for status in JobStatus if status.is_active])
        )
        if portfolio_id is not None:
            query = query.where(AnalysisJob.portfolio_id == portfolio_id)
        if project_id is not None:
            query = query.where(AnalysisJob.project_id == project_id)

        with self.db.read_session() as session:
            return session.exec(query.order_by(AnalysisJob.created_at.desc())).first()

    def last_completed_job(self, portfolio_id: int) -> Optional[AnalysisJob]:
        with self.db.read_session() as session:
            return session.exec(
                select(AnalysisJob)
                .where(AnalysisJob.portfolio_id == portfolio_id)
                .where(AnalysisJob.status == JobStatus.COMPLETED)
                .order_by(AnalysisJob.completed_at.desc())
            ).first()

    def media_statuses(self, items: List[Tuple[MediaKind, int]]) -> dict:
        """Current analysis status for each (kind, id) pair"""
        statuses = {}
        with self.db.read_session() as session:
            for kind, media_id in items:
                record = session.get(MEDIA_MODELS[kind], media_id)
                statuses[(kind, media_id)] = (
                    record.analysis_status if record is not None else AnalysisStatus.FAILED
                )
        return statuses
