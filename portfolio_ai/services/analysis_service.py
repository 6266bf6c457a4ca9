"""
Analysis Service

Entry point for starting and inspecting portfolio and project analysis.
Wires the rate limiter, analyzers and aggregators together and owns the
background tasks they run in.
"""

import asyncio
from typing import Optional
from datetime import timedelta

from portfolio_ai.config import PipelineConfig, Settings
from portfolio_ai.core.exceptions import AnalysisNotAllowedException, ResourceNotFoundException
from portfolio_ai.core.logging_config import ContextManager, get_logger
from portfolio_ai.db.session import DatabaseSession
from portfolio_ai.domain.analysis.results import (
    AnalysisEligibility, JobStatusView, PortfolioAnalysisResults
)
from portfolio_ai.models import AnalysisStatus, as_utc, utc_now
from portfolio_ai.repositories.analysis_store import AnalysisStore
from portfolio_ai.services.job_tracker import JobTracker
from portfolio_ai.services.media_analyzer import MediaAnalyzer
from portfolio_ai.services.portfolio_aggregator import PortfolioAggregator
from portfolio_ai.services.project_aggregator import ProjectAggregator
from portfolio_ai.services.providers import (
    ContentAnalysisProvider, EmbeddingProvider, OpenAIContentProvider,
    OpenAIEmbeddingProvider, create_openai_client
)
from portfolio_ai.services.rate_limiter import ContentRateLimiter
from portfolio_ai.services.task_registry import TaskRegistry

logger = get_logger(__name__)

ANALYSIS_IN_PROGRESS = "Analysis is already in progress for this portfolio."


class AnalysisService:
    """Start, track and read back hierarchical content analysis"""

    def __init__(
        self,
        store: AnalysisStore,
        tracker: JobTracker,
        limiter: ContentRateLimiter,
        project_aggregator: ProjectAggregator,
        portfolio_aggregator: PortfolioAggregator,
        tasks: TaskRegistry,
        config: PipelineConfig
    ):
        self.store = store
        self.tracker = tracker
        self.limiter = limiter
        self.project_aggregator = project_aggregator
        self.portfolio_aggregator = portfolio_aggregator
        self.tasks = tasks
        self.config = config

    def can_analyze_portfolio(self, portfolio_id: int) -> AnalysisEligibility:
        if self.store.get_portfolio(portfolio_id) is None:
            raise ResourceNotFoundException("Portfolio", portfolio_id)

        active = self.tracker.find_active_job(portfolio_id=portfolio_id)
        if active is not None:
            return AnalysisEligibility(allowed=False, reason=ANALYSIS_IN_PROGRESS, active_job_id=active.id)

        cooldown = self.config.reanalysis_cooldown_hours
        last = self.tracker.last_completed_job(portfolio_id)
        if cooldown > 0 and last is not None and last.completed_at is not None:
            next_available_at = as_utc(last.completed_at) + timedelta(hours=cooldown)
            if next_available_at > utc_now():
                return AnalysisEligibility(
                    allowed=False,
                    reason=f"Portfolio was analyzed recently. Please wait {cooldown:g} hours between analyses.",
                    next_available_at=next_available_at
                )

        return AnalysisEligibility(allowed=True, reason="Portfolio is ready for analysis")

    async def start_portfolio_analysis(self, portfolio_id: int) -> str:
        eligibility = self.can_analyze_portfolio(portfolio_id)
        if not eligibility.allowed:
            raise AnalysisNotAllowedException(portfolio_id, eligibility.reason, eligibility.next_available_at)

        portfolio = self.store.get_portfolio(portfolio_id)
        job = self.tracker.create(portfolio_id=portfolio_id, creator_id=portfolio.creator_id)

        try:
            self.tasks.spawn(
                self.portfolio_aggregator.run(portfolio_id, job.id),
                name=f"portfolio-{portfolio_id}"
            )
            self.tracker.ensure_processing(job.id, message="Portfolio analysis started")
        except Exception as e:
            self.tracker.fail(job.id, f"Failed to start analysis: {e}")
            raise

        logger.info(f"Started portfolio analysis job {job.id}", portfolio_id=portfolio_id, job_id=job.id)
        return job.id

    async def start_project_analysis(self, project_id: int) -> str:
        project = self.store.get_project(project_id)
        if project is None:
            raise ResourceNotFoundException("Project", project_id)

        active = self.tracker.find_active_job(project_id=project_id)
        if active is not None:
            logger.info(f"Project {project_id} already has active job {active.id}")
            return active.id

        job = self.tracker.create(project_id=project_id, creator_id=project.creator_id)
        try:
            self.tasks.spawn(self._run_project_job(project_id, job.id), name=f"project-job-{project_id}")
            self.tracker.ensure_processing(job.id, message="Project analysis started")
        except Exception as e:
            self.tracker.fail(job.id, f"Failed to start analysis: {e}")
            raise

        logger.info(f"Started project analysis job {job.id}", project_id=project_id, job_id=job.id)
        return job.id

    async def _run_project_job(self, project_id: int, job_id: str) -> None:
        ContextManager.set_context(job_id=job_id, project_id=project_id)
        self.tracker.ensure_processing(job_id)

        def on_progress(settled: int, total: int) -> None:
            # One extra step for the project synthesis
            self.tracker.update(
                job_id,
                progress=JobTracker.progress_for(settled, total + 1),
                message=f"Analyzed {settled} of {total} media items"
            )

        try:
            result = await self.project_aggregator.run(project_id, progress_callback=on_progress)
        except asyncio.CancelledError:
            self.tracker.fail(job_id, "Analysis was interrupted")
            raise
        except Exception as e:
            logger.exception(f"Project analysis job {job_id} crashed")
            self.tracker.fail(job_id, f"Project analysis failed: {e}")
            return

        if result.status == AnalysisStatus.SUCCESS:
            if result.media_analyzed < result.media_total:
                message = f"Project analysis completed using {result.media_analyzed} of {result.media_total} media items"
            else:
                message = "Project analysis completed"
            self.tracker.complete(job_id, message)
        else:
            self.tracker.fail(job_id, result.error or "Project analysis failed")

    def get_job_status(self, job_id: str) -> JobStatusView:
        return self.tracker.get_status(job_id)

    def get_portfolio_analysis_results(self, portfolio_id: int) -> PortfolioAnalysisResults:
        portfolio = self.store.get_portfolio(portfolio_id)
        if portfolio is None:
            raise ResourceNotFoundException("Portfolio", portfolio_id)

        active = self.tracker.find_active_job(portfolio_id=portfolio_id)
        return PortfolioAnalysisResults(
            portfolio_id=portfolio_id,
            has_analysis=bool(portfolio.summary),
            analysis=portfolio.summary,
            analysis_status=portfolio.analysis_status,
            analysis_error=portfolio.analysis_error,
            active_job=JobStatusView.from_job(active) if active else None
        )

    def get_rate_limit_metrics(self) -> dict:
        return self.limiter.get_metrics()

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for background analysis, cancelling what is left at the timeout"""
        pending = self.tasks.pending
        if pending:
            logger.info(f"Draining {pending} background analysis tasks")
        return await self.tasks.drain(timeout)


def build_analysis_service(
    settings: Settings,
    db: Optional[DatabaseSession] = None,
    content_provider: Optional[ContentAnalysisProvider] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
    config: Optional[PipelineConfig] = None
) -> AnalysisService:
    """
    Wire the analysis stack from settings.

    Raises ConfigurationException right away when providers are not supplied
    and no OpenAI key is configured.
    """
    config = config or PipelineConfig.from_settings(settings)

    if content_provider is None or embedding_provider is None:
        client = create_openai_client(
            settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.provider_timeout_seconds
        )
        content_provider = content_provider or OpenAIContentProvider(
            client,
            model=settings.analysis_model,
            synthesis_model=settings.synthesis_model
        )
        embedding_provider = embedding_provider or OpenAIEmbeddingProvider(
            client,
            model=settings.embedding_model,
            dimensions=config.embedding_dimensions
        )

    db = db or DatabaseSession(settings.database_url)
    store = AnalysisStore(db)
    tracker = JobTracker(store)
    limiter = ContentRateLimiter.from_config(config)
    tasks = TaskRegistry()

    analyzer = MediaAnalyzer(
        store,
        limiter,
        content_provider,
        embedding_provider,
        slot_timeout=config.slot_timeout,
        embedding_dimensions=config.embedding_dimensions
    )
    project_aggregator = ProjectAggregator(
        store, analyzer, limiter, content_provider, embedding_provider, tasks, config
    )
    portfolio_aggregator = PortfolioAggregator(
        store, tracker, project_aggregator, limiter, content_provider, embedding_provider, tasks, config
    )

    logger.info("Analysis service initialized")
    return AnalysisService(store, tracker, limiter, project_aggregator, portfolio_aggregator, tasks, config)
