"""
Tests for the Portfolio Aggregator

Exercises every exit of the bounded wait: all projects done, enough done,
nothing left running, patience and exhausted rounds.
"""

import asyncio

import pytest

from portfolio_ai.core.exceptions import ProviderException
from portfolio_ai.models import AnalysisStatus, JobStatus
from portfolio_ai.services.portfolio_aggregator import NO_PROJECTS, NO_PROJECTS_ANALYZED

from conftest import FakeContentProvider, wait_for_job


def seed_projects(seed, portfolio_id: int, count: int):
    """One single-image project per index; image urls are p{index}.jpg"""
    return [
        seed.project_with_images(portfolio_id, f"Project {index}", [f"https://cdn.example.com/p{index}.jpg"])
        for index in range(count)
    ]


class PortfolioOnlyFailure(FakeContentProvider):
    """Project synthesis works, portfolio synthesis does not"""

    async def generate_text(self, prompt: str) -> str:
        if "professional portfolio" in prompt:
            self.text_prompts.append(prompt)
            raise ProviderException("fake", "portfolio synthesis unavailable")
        return await super().generate_text(prompt)


@pytest.mark.asyncio
async def test_all_projects_analyzed(seed, store, make_service):
    portfolio = seed.portfolio()
    seed_projects(seed, portfolio.id, 3)
    service = make_service(FakeContentProvider())

    job_id = await service.start_portfolio_analysis(portfolio.id)
    view = await wait_for_job(service, job_id)

    assert view.status == JobStatus.COMPLETED
    assert view.progress == 100
    assert view.message == "Portfolio analysis completed"
    stored = store.get_portfolio(portfolio.id)
    assert stored.analysis_status == AnalysisStatus.SUCCESS
    assert stored.summary == "Synthesized overview"
    assert stored.embedding is not None

    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_portfolio_without_projects_completes(seed, make_service):
    portfolio = seed.portfolio()
    service = make_service(FakeContentProvider())

    job_id = await service.start_portfolio_analysis(portfolio.id)
    view = await wait_for_job(service, job_id)

    assert view.status == JobStatus.COMPLETED
    assert view.message == NO_PROJECTS
    assert view.progress == 100


@pytest.mark.asyncio
async def test_no_project_analyzed_fails_job(seed, store, make_service):
    portfolio = seed.portfolio()
    seed_projects(seed, portfolio.id, 2)
    provider = FakeContentProvider(fail_urls=["https://cdn.example.com/p0.jpg", "https://cdn.example.com/p1.jpg"])
    service = make_service(provider)

    job_id = await service.start_portfolio_analysis(portfolio.id)
    view = await wait_for_job(service, job_id)

    assert view.status == JobStatus.FAILED
    assert view.message == NO_PROJECTS_ANALYZED
    stored = store.get_portfolio(portfolio.id)
    assert stored.analysis_status == AnalysisStatus.FAILED
    assert stored.summary is None
    assert provider.text_prompts == []

    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_sufficient_projects_do_not_wait_for_slow_one(seed, store, make_service):
    """Four of five projects clear the 0.7 threshold; the slow one is left running."""
    portfolio = seed.portfolio()
    projects = seed_projects(seed, portfolio.id, 5)
    gate = asyncio.Event()
    provider = FakeContentProvider(gates={"https://cdn.example.com/p4.jpg": gate})
    service = make_service(provider)

    job_id = await service.start_portfolio_analysis(portfolio.id)
    view = await wait_for_job(service, job_id)

    assert view.status == JobStatus.COMPLETED
    assert view.message == "Portfolio analysis completed using 4 of 5 projects"
    prompt = provider.text_prompts[-1]
    assert "Analyzing a professional portfolio of 4 projects" in prompt
    assert "Project: Project 4" not in prompt

    gate.set()
    await service.drain(timeout=5)
    assert store.get_project(projects[4].id).analysis_status == AnalysisStatus.SUCCESS


@pytest.mark.asyncio
async def test_forced_exit_when_rounds_run_out(seed, make_service, pipeline_config):
    portfolio = seed.portfolio()
    seed_projects(seed, portfolio.id, 4)
    gates = {
        "https://cdn.example.com/p2.jpg": asyncio.Event(),
        "https://cdn.example.com/p3.jpg": asyncio.Event(),
    }
    provider = FakeContentProvider(gates=gates)
    config = pipeline_config.model_copy(update={"portfolio_poll_attempts": 4})
    service = make_service(provider, config=config)
    job = service.tracker.create(portfolio_id=portfolio.id)

    result = await service.portfolio_aggregator.run(portfolio.id, job.id)

    assert result.status == JobStatus.COMPLETED
    assert result.exit_reason == "forced"
    assert result.projects_analyzed == 2
    assert service.get_job_status(job.id).message == "Portfolio analysis completed using 2 of 4 projects"

    for gate in gates.values():
        gate.set()
    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_settled_exit_below_threshold(seed, make_service):
    """Half the projects fail; once nothing is running the rest is used."""
    portfolio = seed.portfolio()
    seed_projects(seed, portfolio.id, 2)
    provider = FakeContentProvider(fail_urls=["https://cdn.example.com/p1.jpg"])
    service = make_service(provider)
    job = service.tracker.create(portfolio_id=portfolio.id)

    result = await service.portfolio_aggregator.run(portfolio.id, job.id)

    assert result.status == JobStatus.COMPLETED
    assert result.exit_reason == "settled"
    assert result.message == "Portfolio analysis completed using 1 of 2 projects"

    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_patience_exit(seed, make_service, pipeline_config):
    portfolio = seed.portfolio()
    seed_projects(seed, portfolio.id, 3)
    gates = {
        "https://cdn.example.com/p1.jpg": asyncio.Event(),
        "https://cdn.example.com/p2.jpg": asyncio.Event(),
    }
    config = pipeline_config.model_copy(update={"partial_after_attempts": 2})
    service = make_service(FakeContentProvider(gates=gates), config=config)
    job = service.tracker.create(portfolio_id=portfolio.id)

    result = await service.portfolio_aggregator.run(portfolio.id, job.id)

    assert result.exit_reason == "patience"
    assert result.projects_analyzed == 1
    assert result.status == JobStatus.COMPLETED

    for gate in gates.values():
        gate.set()
    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_creator_context_in_prompt(seed, make_service):
    creator = seed.creator(username="ada", primary_role=["Designer", "Illustrator"], bio="Draws maps")
    portfolio = seed.portfolio(creator_id=creator.id)
    seed_projects(seed, portfolio.id, 1)
    provider = FakeContentProvider()
    service = make_service(provider)
    job = service.tracker.create(portfolio_id=portfolio.id)

    await service.portfolio_aggregator.run(portfolio.id, job.id)

    prompt = provider.text_prompts[-1]
    assert "Creator: ada" in prompt
    assert "Primary Role: Designer, Illustrator" in prompt
    assert "Bio: Draws maps" in prompt
    assert "AI Analysis Summary: Synthesized overview" in prompt

    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_portfolio_synthesis_failure_fails_job(seed, store, make_service):
    portfolio = seed.portfolio()
    projects = seed_projects(seed, portfolio.id, 2)
    service = make_service(PortfolioOnlyFailure())

    job_id = await service.start_portfolio_analysis(portfolio.id)
    view = await wait_for_job(service, job_id)

    assert view.status == JobStatus.FAILED
    assert view.message.startswith("Portfolio synthesis failed:")
    assert "portfolio synthesis unavailable" in view.message
    assert store.get_portfolio(portfolio.id).analysis_status == AnalysisStatus.FAILED
    # Project summaries are kept for the next attempt
    assert store.get_project(projects[0].id).summary == "Synthesized overview"

    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_interrupted_job_is_failed(seed, make_service):
    portfolio = seed.portfolio()
    seed_projects(seed, portfolio.id, 1)
    gate = asyncio.Event()
    service = make_service(FakeContentProvider(gates={"https://cdn.example.com/p0.jpg": gate}))

    job_id = await service.start_portfolio_analysis(portfolio.id)
    await asyncio.sleep(0.1)
    cancelled = await service.drain(timeout=0.01)

    assert cancelled >= 1
    view = service.get_job_status(job_id)
    assert view.status == JobStatus.FAILED
    assert view.message == "Analysis was interrupted"


@pytest.mark.asyncio
@pytest.mark.parametrize("gated,attempts,expected", [
    (3, 40, "sufficient"),
    (4, 10, "forced"),
])
async def test_completion_threshold_boundary(seed, make_service, pipeline_config, gated, attempts, expected):
    """Seven of ten projects meets the 0.7 threshold exactly; six does not."""
    portfolio = seed.portfolio()
    seed_projects(seed, portfolio.id, 10)
    gates = {f"https://cdn.example.com/p{index}.jpg": asyncio.Event() for index in range(10 - gated, 10)}
    config = pipeline_config.model_copy(update={"portfolio_poll_attempts": attempts})
    service = make_service(FakeContentProvider(gates=gates), config=config)
    job = service.tracker.create(portfolio_id=portfolio.id)

    result = await service.portfolio_aggregator.run(portfolio.id, job.id)

    assert result.exit_reason == expected
    assert result.projects_analyzed == 10 - gated
    assert result.message == f"Portfolio analysis completed using {10 - gated} of 10 projects"

    for gate in gates.values():
        gate.set()
    await service.drain(timeout=5)
