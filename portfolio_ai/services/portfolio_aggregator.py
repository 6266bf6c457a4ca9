"""
Portfolio Aggregator

Drives a portfolio analysis job: fans out one ProjectAggregator per
project, waits under a bounded exit policy, and synthesizes the portfolio
summary from whichever projects finished.

Exit policy, checked after every polling round:
- complete: every project has a summary
- sufficient: the analyzed fraction reached the completion threshold
- settled: every project task has finished, nothing more can arrive
- patience: optional, after N rounds proceed with any analyzed project
- forced: rounds exhausted with at least one analyzed project
"""

import asyncio
from typing import Dict, List, Optional

from portfolio_ai.config import PipelineConfig
from portfolio_ai.core.exceptions import PortfolioAIException, ResourceNotFoundException
from portfolio_ai.core.logging_config import ContextManager, get_logger
from portfolio_ai.domain.analysis.results import PortfolioAnalysisResult
from portfolio_ai.models import AnalysisStatus, JobStatus, Project
from portfolio_ai.repositories.analysis_store import AnalysisStore
from portfolio_ai.services.job_tracker import JobTracker
from portfolio_ai.services.project_aggregator import ProjectAggregator, synthesize_text
from portfolio_ai.services.prometheus_metrics import get_metrics
from portfolio_ai.services.prompts import (
    PORTFOLIO_ANALYSIS_PROMPT, build_portfolio_context, compose_prompt
)
from portfolio_ai.services.providers import ContentAnalysisProvider, EmbeddingProvider
from portfolio_ai.services.rate_limiter import ContentRateLimiter
from portfolio_ai.services.task_registry import TaskRegistry

logger = get_logger(__name__)

NO_PROJECTS = "No projects found to analyze"
NO_PROJECTS_ANALYZED = "No projects were successfully analyzed"


class PortfolioAggregator:
    """Run one portfolio analysis job end to end"""

    def __init__(
        self,
        store: AnalysisStore,
        tracker: JobTracker,
        project_aggregator: ProjectAggregator,
        limiter: ContentRateLimiter,
        content_provider: ContentAnalysisProvider,
        embedding_provider: EmbeddingProvider,
        tasks: TaskRegistry,
        config: PipelineConfig
    ):
        self.store = store
        self.tracker = tracker
        self.project_aggregator = project_aggregator
        self.limiter = limiter
        self.content_provider = content_provider
        self.embedding_provider = embedding_provider
        self.tasks = tasks
        self.config = config
        self.metrics = get_metrics()

    async def run(self, portfolio_id: int, job_id: str) -> PortfolioAnalysisResult:
        ContextManager.set_context(job_id=job_id, portfolio_id=portfolio_id)
        logger.operation_start("portfolio_analysis")

        try:
            result = await self._run(portfolio_id, job_id)
        except asyncio.CancelledError:
            self._fail(portfolio_id, job_id, "Analysis was interrupted")
            raise
        except Exception as e:
            logger.operation_error("portfolio_analysis", e)
            message = e.message if isinstance(e, PortfolioAIException) else f"{type(e).__name__}: {e}"
            self._fail(portfolio_id, job_id, f"Portfolio analysis failed: {message}")
            return PortfolioAnalysisResult(
                portfolio_id=portfolio_id,
                job_id=job_id,
                status=JobStatus.FAILED,
                message=message
            )

        logger.operation_end("portfolio_analysis", job_status=result.status.value)
        return result

    async def _run(self, portfolio_id: int, job_id: str) -> PortfolioAnalysisResult:
        self.tracker.ensure_processing(job_id)

        portfolio = self.store.get_portfolio(portfolio_id)
        if portfolio is None:
            raise ResourceNotFoundException("Portfolio", portfolio_id)

        projects = self.store.list_portfolio_projects(portfolio_id)
        if not projects:
            self.tracker.complete(job_id, NO_PROJECTS)
            return PortfolioAnalysisResult(
                portfolio_id=portfolio_id,
                job_id=job_id,
                status=JobStatus.COMPLETED,
                message=NO_PROJECTS
            )

        self.store.update_portfolio(portfolio_id, analysis_status=AnalysisStatus.PROCESSING, analysis_error=None)

        total = len(projects)
        total_steps = total + 1
        handles: Dict[int, asyncio.Task] = {}
        for index, project in enumerate(projects, start=1):
            handles[project.id] = self.tasks.spawn(
                self.project_aggregator.run(project.id),
                name=f"project-{project.id}"
            )
            self.tracker.update(
                job_id,
                progress=JobTracker.progress_for(index, total_steps),
                message=f"Started analysis of {index} of {total} projects"
            )

        exit_reason = await self._wait_for_projects(portfolio_id, job_id, handles)
        self.metrics.record_aggregation_exit("portfolio", exit_reason)

        if self.config.settle_delay > 0:
            await asyncio.sleep(self.config.settle_delay)

        analyzed = self._analyzed_projects(portfolio_id, handles)
        if not analyzed:
            self._fail(portfolio_id, job_id, NO_PROJECTS_ANALYZED)
            return PortfolioAnalysisResult(
                portfolio_id=portfolio_id,
                job_id=job_id,
                status=JobStatus.FAILED,
                projects_total=total,
                exit_reason=exit_reason,
                message=NO_PROJECTS_ANALYZED
            )

        return await self._synthesize(portfolio, job_id, analyzed, total, exit_reason)

    def _analyzed_projects(self, portfolio_id: int, handles: Dict[int, asyncio.Task]) -> List[Project]:
        """Projects whose task in this run finished with a stored summary"""
        return [
            project for project in self.store.list_analyzed_projects(portfolio_id)
            if project.id in handles
            and handles[project.id].done()
            and project.analysis_status == AnalysisStatus.SUCCESS
        ]

    def _exit_reason(self, analyzed: int, total: int, attempt: int, all_done: bool) -> Optional[str]:
        if analyzed == total:
            return "complete"
        if analyzed / total >= self.config.completion_threshold:
            return "sufficient"
        if all_done:
            return "settled"
        patience = self.config.partial_after_attempts
        if patience is not None and attempt >= patience and analyzed > 0:
            return "patience"
        return None

    async def _wait_for_projects(self, portfolio_id: int, job_id: str, handles: Dict[int, asyncio.Task]) -> str:
        total = len(handles)
        attempt = 0
        analyzed_count = 0

        while attempt < self.config.portfolio_poll_attempts:
            attempt += 1
            running = {task for task in handles.values() if not task.done()}
            if running:
                await asyncio.wait(running, timeout=self.config.portfolio_poll_interval)

            analyzed_count = len(self._analyzed_projects(portfolio_id, handles))
            all_done = all(task.done() for task in handles.values())
            self.tracker.update(job_id, message=f"Analyzed {analyzed_count} of {total} projects")

            reason = self._exit_reason(analyzed_count, total, attempt, all_done)
            if reason is not None:
                logger.info(f"Portfolio {portfolio_id} wait ended ({reason}) after {attempt} rounds: {analyzed_count}/{total} projects")
                return reason

        reason = "forced" if analyzed_count > 0 else "timeout"
        logger.warning(f"Portfolio {portfolio_id} wait exhausted after {attempt} rounds: {analyzed_count}/{total} projects")
        return reason

    async def _synthesize(
        self,
        portfolio,
        job_id: str,
        projects: List[Project],
        total: int,
        exit_reason: str
    ) -> PortfolioAnalysisResult:
        creator = self.store.get_creator(portfolio.creator_id) if portfolio.creator_id else None
        prompt = compose_prompt(PORTFOLIO_ANALYSIS_PROMPT, build_portfolio_context(creator, projects))

        try:
            summary, embedding = await synthesize_text(
                self.limiter,
                self.content_provider,
                self.embedding_provider,
                prompt,
                slot_timeout=self.config.slot_timeout,
                dimensions=self.config.embedding_dimensions
            )
        except PortfolioAIException as e:
            message = f"Portfolio synthesis failed: {e.message}"
            self._fail(portfolio.id, job_id, message)
            return PortfolioAnalysisResult(
                portfolio_id=portfolio.id,
                job_id=job_id,
                status=JobStatus.FAILED,
                projects_total=total,
                projects_analyzed=len(projects),
                exit_reason=exit_reason,
                message=message
            )

        self.store.update_portfolio(
            portfolio.id,
            summary=summary,
            embedding=embedding,
            analysis_status=AnalysisStatus.SUCCESS,
            analysis_error=None
        )

        if len(projects) == total:
            message = "Portfolio analysis completed"
        else:
            message = f"Portfolio analysis completed using {len(projects)} of {total} projects"
        self.tracker.complete(job_id, message)

        return PortfolioAnalysisResult(
            portfolio_id=portfolio.id,
            job_id=job_id,
            status=JobStatus.COMPLETED,
            projects_total=total,
            projects_analyzed=len(projects),
            exit_reason=exit_reason,
            message=message
        )

    def _fail(self, portfolio_id: int, job_id: str, message: str) -> None:
        self.store.update_portfolio(
            portfolio_id,
            analysis_status=AnalysisStatus.FAILED,
            analysis_error=message,
            summary=None,
            embedding=None
        )
        self.tracker.fail(job_id, message)
        self.metrics.record_error("portfolio_failed", "portfolio_aggregator")
