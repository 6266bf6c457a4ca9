"""
Media Analyzer

Analyzes a single image or video: describe it through the content provider,
embed the description and persist both. Failures are written to the record
instead of being raised, so one bad item never takes its siblings down.
"""

from typing import Optional

from portfolio_ai.core.exceptions import (
    PortfolioAIException, ProviderException, ResourceNotFoundException
)
from portfolio_ai.core.logging_config import get_logger
from portfolio_ai.domain.analysis.results import MediaAnalysisResult
from portfolio_ai.models import AnalysisStatus, MediaKind
from portfolio_ai.repositories.analysis_store import AnalysisStore
from portfolio_ai.services.media_sources import resolve_source
from portfolio_ai.services.prometheus_metrics import get_metrics
from portfolio_ai.services.prompts import IMAGE_ANALYSIS_PROMPT, VIDEO_ANALYSIS_PROMPT
from portfolio_ai.services.providers import ContentAnalysisProvider, EmbeddingProvider
from portfolio_ai.services.rate_limiter import ContentClass, ContentRateLimiter

logger = get_logger(__name__)

PROMPTS = {
    MediaKind.IMAGE: IMAGE_ANALYSIS_PROMPT,
    MediaKind.VIDEO: VIDEO_ANALYSIS_PROMPT,
}


class MediaAnalyzer:
    """Summarize and embed one media item under the rate limiter"""

    def __init__(
        self,
        store: AnalysisStore,
        limiter: ContentRateLimiter,
        content_provider: ContentAnalysisProvider,
        embedding_provider: EmbeddingProvider,
        slot_timeout: Optional[float] = None,
        embedding_dimensions: Optional[int] = None
    ):
        self.store = store
        self.limiter = limiter
        self.content_provider = content_provider
        self.embedding_provider = embedding_provider
        self.slot_timeout = slot_timeout
        self.embedding_dimensions = embedding_dimensions
        self.metrics = get_metrics()

    async def analyze(self, kind: MediaKind, media_id: int) -> MediaAnalysisResult:
        kind = MediaKind(kind)
        record = self.store.get_media(kind, media_id)

        if record is not None and record.is_analyzed:
            logger.debug(f"{kind.value} {media_id} already analyzed, skipping")
            if record.analysis_status != AnalysisStatus.SUCCESS:
                self.store.update_media(kind, media_id, analysis_status=AnalysisStatus.SUCCESS, analysis_error=None)
            self.metrics.record_media_analyzed(kind.value, "skipped")
            return MediaAnalysisResult(kind=kind, media_id=media_id, status=AnalysisStatus.SUCCESS, skipped=True)

        try:
            if record is None:
                raise ResourceNotFoundException(kind.value.capitalize(), media_id)

            self.store.update_media(kind, media_id, analysis_status=AnalysisStatus.PROCESSING, analysis_error=None)

            async with self.limiter.slot(ContentClass.for_media(kind), timeout=self.slot_timeout):
                source = resolve_source(kind, record)
                summary = await self.content_provider.analyze_media(source, PROMPTS[kind])
                if not summary or not summary.strip():
                    raise ProviderException("content", f"empty analysis for {kind.value} {media_id}")
                embedding = await self.embedding_provider.embed(summary)
                self._check_dimensions(embedding)

            self.store.update_media(
                kind, media_id,
                summary=summary,
                embedding=embedding,
                analysis_status=AnalysisStatus.SUCCESS,
                analysis_error=None
            )
            self.metrics.record_media_analyzed(kind.value, "success")
            logger.info(f"Analyzed {kind.value} {media_id}", summary_chars=len(summary))
            return MediaAnalysisResult(kind=kind, media_id=media_id, status=AnalysisStatus.SUCCESS)

        except PortfolioAIException as e:
            return self._record_failure(kind, media_id, e.message, e.error_code)
        except Exception as e:
            logger.exception(f"Unexpected error analyzing {kind.value} {media_id}")
            return self._record_failure(kind, media_id, f"{type(e).__name__}: {e}", "unexpected")

    def _check_dimensions(self, embedding) -> None:
        if not embedding:
            raise ProviderException("embedding", "empty embedding vector")
        if self.embedding_dimensions and len(embedding) != self.embedding_dimensions:
            raise ProviderException(
                "embedding",
                f"embedding has {len(embedding)} dimensions, expected {self.embedding_dimensions}"
            )

    def _record_failure(self, kind: MediaKind, media_id: int, error: str, error_type: str) -> MediaAnalysisResult:
        logger.warning(f"Analysis of {kind.value} {media_id} failed: {error}")
        # Summary and embedding are cleared together so the pair stays consistent
        self.store.update_media(
            kind, media_id,
            analysis_status=AnalysisStatus.FAILED,
            analysis_error=error,
            summary=None,
            embedding=None
        )
        self.metrics.record_media_analyzed(kind.value, "failed")
        self.metrics.record_error(error_type.lower(), "media_analyzer")
        return MediaAnalysisResult(kind=kind, media_id=media_id, status=AnalysisStatus.FAILED, error=error)
