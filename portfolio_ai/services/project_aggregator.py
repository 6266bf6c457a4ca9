"""
Project Aggregator

Fans a project's media out to the MediaAnalyzer, waits a bounded time for
the items to settle (retrying failed ones), then synthesizes a project
summary from every media summary available.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

from portfolio_ai.config import PipelineConfig
from portfolio_ai.core.exceptions import (
    PortfolioAIException, ProviderException, ResourceNotFoundException
)
from portfolio_ai.core.logging_config import get_logger
from portfolio_ai.domain.analysis.results import ProjectAnalysisResult
from portfolio_ai.models import AnalysisStatus, MediaKind
from portfolio_ai.repositories.analysis_store import AnalysisStore
from portfolio_ai.services.media_analyzer import MediaAnalyzer
from portfolio_ai.services.prometheus_metrics import get_metrics
from portfolio_ai.services.prompts import (
    PROJECT_ANALYSIS_PROMPT, build_project_context, compose_prompt
)
from portfolio_ai.services.providers import ContentAnalysisProvider, EmbeddingProvider
from portfolio_ai.services.rate_limiter import ContentClass, ContentRateLimiter
from portfolio_ai.services.task_registry import TaskRegistry

logger = get_logger(__name__)

NO_ANALYZABLE_MEDIA = "No analyzable media"

MediaKey = Tuple[MediaKind, int]
ProgressCallback = Callable[[int, int], None]


async def synthesize_text(
    limiter: ContentRateLimiter,
    content_provider: ContentAnalysisProvider,
    embedding_provider: EmbeddingProvider,
    prompt: str,
    slot_timeout: Optional[float] = None,
    dimensions: Optional[int] = None
) -> Tuple[str, List[float]]:
    """Generate a summary and its embedding under a text slot."""
    async with limiter.slot(ContentClass.TEXT, timeout=slot_timeout):
        summary = await content_provider.generate_text(prompt)
        if not summary or not summary.strip():
            raise ProviderException("content", "synthesis returned empty text")
        embedding = await embedding_provider.embed(summary)

    if not embedding:
        raise ProviderException("embedding", "empty embedding vector")
    if dimensions and len(embedding) != dimensions:
        raise ProviderException(
            "embedding",
            f"embedding has {len(embedding)} dimensions, expected {dimensions}"
        )
    return summary, embedding


class ProjectAggregator:
    """Analyze a project's media and roll it up into a project summary"""

    def __init__(
        self,
        store: AnalysisStore,
        analyzer: MediaAnalyzer,
        limiter: ContentRateLimiter,
        content_provider: ContentAnalysisProvider,
        embedding_provider: EmbeddingProvider,
        tasks: TaskRegistry,
        config: PipelineConfig
    ):
        self.store = store
        self.analyzer = analyzer
        self.limiter = limiter
        self.content_provider = content_provider
        self.embedding_provider = embedding_provider
        self.tasks = tasks
        self.config = config
        self.metrics = get_metrics()

    async def run(self, project_id: int, progress_callback: Optional[ProgressCallback] = None) -> ProjectAnalysisResult:
        project = self.store.get_project(project_id)
        if project is None:
            raise ResourceNotFoundException("Project", project_id)

        self.store.update_project(project_id, analysis_status=AnalysisStatus.PROCESSING, analysis_error=None)

        media = self.store.list_project_media(project_id)
        needs_analysis = [(kind, record.id) for kind, record in media if not record.is_analyzed]
        already_analyzed = len(media) - len(needs_analysis)

        logger.info(
            f"Project {project_id}: {len(media)} media, {already_analyzed} already analyzed, "
            f"{len(needs_analysis)} to analyze",
            project_id=project_id
        )

        exit_reason = "skipped"
        attempts = 0
        unfinished = 0
        if needs_analysis:
            exit_reason, attempts, unfinished = await self._analyze_media(
                needs_analysis, already_analyzed, len(media), progress_callback
            )
        self.metrics.record_aggregation_exit("project", exit_reason)

        return await self._synthesize(project, exit_reason, attempts, unfinished)

    def _dispatch(self, key: MediaKey) -> asyncio.Task:
        kind, media_id = key
        return self.tasks.spawn(self.analyzer.analyze(kind, media_id), name=f"{kind.value}-{media_id}")

    async def _analyze_media(
        self,
        items: List[MediaKey],
        already_analyzed: int,
        total: int,
        progress_callback: Optional[ProgressCallback]
    ) -> Tuple[str, int, int]:
        """
        Dispatch every item and wait for them in bounded rounds.

        Returns:
            (exit reason, rounds used, items still running at exit)
        """
        handles: Dict[MediaKey, asyncio.Task] = {key: self._dispatch(key) for key in items}
        retries: Dict[MediaKey, int] = dict.fromkeys(items, 0)
        exit_reason = "timeout"
        attempt = 0

        while attempt < self.config.media_poll_attempts:
            attempt += 1
            running = {task for task in handles.values() if not task.done()}
            if running:
                await asyncio.wait(running, timeout=self.config.media_poll_interval)

            # Failed items are retried as soon as they settle, without waiting on slower siblings
            settled = [key for key, task in handles.items() if task.done()]
            statuses = self.store.media_statuses(settled)
            retry = [
                key for key in settled
                if statuses[key] != AnalysisStatus.SUCCESS and retries[key] < self.config.media_retry_limit
            ]
            if retry:
                logger.info(f"Retrying {len(retry)} failed media items")
                for key in retry:
                    retries[key] += 1
                    handles[key] = self._dispatch(key)

            done = len(settled) - len(retry)
            if progress_callback is not None:
                progress_callback(already_analyzed + done, total)

            if done == len(handles):
                exit_reason = "complete"
                break

        unfinished = sum(1 for task in handles.values() if not task.done())
        if unfinished:
            logger.warning(f"{unfinished} media items still running after {attempt} rounds, continuing without them")
        return exit_reason, attempt, unfinished

    async def _synthesize(self, project, exit_reason: str, attempts: int, unfinished: int) -> ProjectAnalysisResult:
        media = self.store.list_project_media(project.id)
        summaries = [record.summary for _, record in media if record.is_analyzed]
        failed = sum(1 for _, record in media if record.analysis_status == AnalysisStatus.FAILED)

        result = ProjectAnalysisResult(
            project_id=project.id,
            status=AnalysisStatus.FAILED,
            media_total=len(media),
            media_analyzed=len(summaries),
            media_failed=failed,
            media_unfinished=unfinished,
            attempts=attempts,
            exit_reason=exit_reason
        )

        if not summaries:
            self._fail_project(project.id, NO_ANALYZABLE_MEDIA)
            result.error = NO_ANALYZABLE_MEDIA
            return result

        prompt = compose_prompt(PROJECT_ANALYSIS_PROMPT, build_project_context(project, summaries))
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
            self._fail_project(project.id, e.message)
            result.error = e.message
            return result

        self.store.update_project(
            project.id,
            summary=summary,
            embedding=embedding,
            analysis_status=AnalysisStatus.SUCCESS,
            analysis_error=None
        )
        logger.info(
            f"Project {project.id} analyzed from {len(summaries)} of {len(media)} media items",
            project_id=project.id
        )
        result.status = AnalysisStatus.SUCCESS
        return result

    def _fail_project(self, project_id: int, error: str) -> None:
        logger.warning(f"Project {project_id} analysis failed: {error}", project_id=project_id)
        self.store.update_project(
            project_id,
            analysis_status=AnalysisStatus.FAILED,
            analysis_error=error,
            summary=None,
            embedding=None
        )
        self.metrics.record_error("project_failed", "project_aggregator")
