"""
Pytest configuration

Shared fixtures: an in-memory database, seeding helpers and fake AI
providers that can be told to fail or to block on an event.
"""

import asyncio
from typing import Dict, Iterable, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from portfolio_ai.config import PipelineConfig, Settings
from portfolio_ai.core.exceptions import ProviderException
from portfolio_ai.db.session import DatabaseSession
from portfolio_ai.models import Creator, Image, Portfolio, Project, Video
from portfolio_ai.repositories.analysis_store import AnalysisStore
from portfolio_ai.services.analysis_service import build_analysis_service

EMBEDDING_DIMENSIONS = 8


class FakeContentProvider:
    """Content provider double that records calls and can fail or block per url"""

    def __init__(
        self,
        fail_urls: Iterable[str] = (),
        fail_once_urls: Iterable[str] = (),
        gates: Optional[Dict[str, asyncio.Event]] = None,
        fail_text: bool = False,
        text_response: str = "Synthesized overview"
    ):
        self.fail_urls = set(fail_urls)
        self.fail_once_urls = set(fail_once_urls)
        self.gates = gates or {}
        self.fail_text = fail_text
        self.text_response = text_response
        self.media_calls: List[str] = []
        self.text_prompts: List[str] = []
        self.active = 0
        self.peak = 0

    async def analyze_media(self, source, prompt: str) -> str:
        self.media_calls.append(source.url)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            gate = self.gates.get(source.url)
            if gate is not None:
                await gate.wait()
            await asyncio.sleep(0)

            if source.url in self.fail_urls:
                raise ProviderException("fake", f"cannot analyze {source.url}")
            if source.url in self.fail_once_urls:
                self.fail_once_urls.discard(source.url)
                raise ProviderException("fake", f"transient failure for {source.url}")
            return f"Summary of {source.url}"
        finally:
            self.active -= 1

    async def generate_text(self, prompt: str) -> str:
        self.text_prompts.append(prompt)
        await asyncio.sleep(0)
        if self.fail_text:
            raise ProviderException("fake", "synthesis unavailable")
        return self.text_response


class FakeEmbeddingProvider:
    def __init__(self, dimensions: int = EMBEDDING_DIMENSIONS):
        self.dimensions = dimensions
        self.calls = 0

    async def embed(self, text: str) -> List[float]:
        self.calls += 1
        return [0.1] * self.dimensions


async def wait_for_job(service, job_id: str, timeout: float = 5.0):
    """Poll a job until it is terminal"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        view = service.get_job_status(job_id)
        if view.status.is_terminal:
            return view
        await asyncio.sleep(0.02)
    raise AssertionError(f"job {job_id} did not finish within {timeout}s")


class Seeder:
    """Creates portfolio rows for tests"""

    def __init__(self, store: AnalysisStore):
        self.store = store

    def creator(self, username: str = "ada", primary_role=None, bio: Optional[str] = None) -> Creator:
        return self.store.add(Creator(username=username, primary_role=primary_role, bio=bio))

    def portfolio(self, creator_id: Optional[int] = None) -> Portfolio:
        return self.store.add(Portfolio(creator_id=creator_id))

    def project(self, portfolio_id: int, title: str = "Project", description: Optional[str] = None) -> Project:
        return self.store.add(Project(portfolio_id=portfolio_id, title=title, description=description))

    def image(self, project_id: int, url: str, order: int = 0, **fields) -> Image:
        return self.store.add(Image(project_id=project_id, url=url, order=order, **fields))

    def video(self, project_id: int, **fields) -> Video:
        return self.store.add(Video(project_id=project_id, **fields))

    def project_with_images(self, portfolio_id: int, title: str, urls: List[str]) -> Project:
        project = self.project(portfolio_id, title=title, description=f"{title} description")
        for index, url in enumerate(urls):
            self.image(project.id, url=url, order=index)
        return project


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield DatabaseSession.from_engine(engine)
    engine.dispose()


@pytest.fixture
def store(db) -> AnalysisStore:
    return AnalysisStore(db)


@pytest.fixture
def seed(store) -> Seeder:
    return Seeder(store)


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    """Fast polling so whole pipelines finish in well under a second"""
    return PipelineConfig(
        image_concurrency=10,
        video_concurrency=2,
        text_concurrency=5,
        slot_timeout=5.0,
        media_poll_interval=0.05,
        media_poll_attempts=40,
        media_retry_limit=1,
        portfolio_poll_interval=0.05,
        portfolio_poll_attempts=40,
        completion_threshold=0.7,
        settle_delay=0.0,
        reanalysis_cooldown_hours=24.0,
        embedding_dimensions=EMBEDDING_DIMENSIONS,
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, openai_api_key=None, database_url="sqlite://")


@pytest.fixture
def content_provider() -> FakeContentProvider:
    return FakeContentProvider()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def make_service(db, test_settings, pipeline_config, embedding_provider):
    """Build an AnalysisService over the test database with a given content provider"""

    def _make(content_provider, config: Optional[PipelineConfig] = None):
        return build_analysis_service(
            test_settings,
            db=db,
            content_provider=content_provider,
            embedding_provider=embedding_provider,
            config=config or pipeline_config
        )

    return _make
