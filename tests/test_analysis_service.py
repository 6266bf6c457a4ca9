from datetime import timedelta

import pytest

from portfolio_ai.core.exceptions import (
    AnalysisNotAllowedException, ConfigurationException, ResourceNotFoundException
)
from portfolio_ai.models import AnalysisStatus, JobStatus, utc_now
from portfolio_ai.services.analysis_service import ANALYSIS_IN_PROGRESS, build_analysis_service

from conftest import FakeContentProvider, wait_for_job


@pytest.fixture
def service(make_service):
    return make_service(FakeContentProvider())


def finish_job(service, portfolio_id: int, completed_at=None):
    job = service.tracker.create(portfolio_id=portfolio_id)
    service.tracker.ensure_processing(job.id)
    job = service.tracker.complete(job.id, "Portfolio analysis completed")
    if completed_at is not None:
        job.completed_at = completed_at
        job = service.store.save_job(job)
    return job


class TestEligibility:
    def test_fresh_portfolio_is_allowed(self, service, seed):
        portfolio = seed.portfolio()

        eligibility = service.can_analyze_portfolio(portfolio.id)

        assert eligibility.allowed is True
        assert eligibility.reason == "Portfolio is ready for analysis"

    def test_active_job_blocks(self, service, seed):
        portfolio = seed.portfolio()
        job = service.tracker.create(portfolio_id=portfolio.id)

        eligibility = service.can_analyze_portfolio(portfolio.id)

        assert eligibility.allowed is False
        assert eligibility.reason == ANALYSIS_IN_PROGRESS
        assert eligibility.active_job_id == job.id

    def test_recent_completion_blocks_until_cooldown(self, service, seed):
        portfolio = seed.portfolio()
        job = finish_job(service, portfolio.id)

        eligibility = service.can_analyze_portfolio(portfolio.id)

        assert eligibility.allowed is False
        assert "Please wait 24 hours" in eligibility.reason
        assert eligibility.next_available_at == job.completed_at + timedelta(hours=24)

    def test_old_completion_is_allowed(self, service, seed):
        portfolio = seed.portfolio()
        finish_job(service, portfolio.id, completed_at=utc_now() - timedelta(hours=25))

        assert service.can_analyze_portfolio(portfolio.id).allowed is True

    def test_zero_cooldown_disables_the_check(self, make_service, pipeline_config, seed):
        service = make_service(
            FakeContentProvider(),
            config=pipeline_config.model_copy(update={"reanalysis_cooldown_hours": 0})
        )
        portfolio = seed.portfolio()
        finish_job(service, portfolio.id)

        assert service.can_analyze_portfolio(portfolio.id).allowed is True

    def test_failed_job_does_not_start_cooldown(self, service, seed):
        portfolio = seed.portfolio()
        job = service.tracker.create(portfolio_id=portfolio.id)
        service.tracker.fail(job.id, "boom")

        assert service.can_analyze_portfolio(portfolio.id).allowed is True

    def test_missing_portfolio(self, service):
        with pytest.raises(ResourceNotFoundException):
            service.can_analyze_portfolio(404)


@pytest.mark.asyncio
async def test_start_refused_while_job_active(service, seed):
    portfolio = seed.portfolio()
    service.tracker.create(portfolio_id=portfolio.id)

    with pytest.raises(AnalysisNotAllowedException) as exc_info:
        await service.start_portfolio_analysis(portfolio.id)

    assert exc_info.value.details["portfolio_id"] == portfolio.id


@pytest.mark.asyncio
async def test_start_returns_processing_job(service, seed):
    portfolio = seed.portfolio()

    job_id = await service.start_portfolio_analysis(portfolio.id)

    view = service.get_job_status(job_id)
    assert view.status == JobStatus.PROCESSING
    assert view.portfolio_id == portfolio.id

    await wait_for_job(service, job_id)
    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_project_job_completes(service, seed, store):
    portfolio = seed.portfolio()
    project = seed.project_with_images(
        portfolio.id, "Single", ["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"]
    )

    job_id = await service.start_project_analysis(project.id)
    view = await wait_for_job(service, job_id)

    assert view.status == JobStatus.COMPLETED
    assert view.message == "Project analysis completed"
    assert view.progress == 100
    assert store.get_project(project.id).analysis_status == AnalysisStatus.SUCCESS

    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_project_job_reports_partial_media(make_service, seed):
    service = make_service(FakeContentProvider(fail_urls=["https://cdn.example.com/b.jpg"]))
    portfolio = seed.portfolio()
    project = seed.project_with_images(
        portfolio.id, "Partial", ["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"]
    )

    job_id = await service.start_project_analysis(project.id)
    view = await wait_for_job(service, job_id)

    assert view.status == JobStatus.COMPLETED
    assert view.message == "Project analysis completed using 1 of 2 media items"

    await service.drain(timeout=5)


@pytest.mark.asyncio
async def test_project_job_fails_without_media(service, seed):
    portfolio = seed.portfolio()
    project = seed.project(portfolio.id, title="Empty")

    job_id = await service.start_project_analysis(project.id)
    view = await wait_for_job(service, job_id)

    assert view.status == JobStatus.FAILED
    assert view.message == "No analyzable media"


@pytest.mark.asyncio
async def test_active_project_job_is_reused(service, seed):
    portfolio = seed.portfolio()
    project = seed.project(portfolio.id)
    existing = service.tracker.create(project_id=project.id)

    job_id = await service.start_project_analysis(project.id)

    assert job_id == existing.id
    assert service.tasks.pending == 0


@pytest.mark.asyncio
async def test_missing_project(service):
    with pytest.raises(ResourceNotFoundException):
        await service.start_project_analysis(12345)


def test_results_view(service, seed, store):
    portfolio = seed.portfolio()
    store.update_portfolio(
        portfolio.id,
        summary="A strong identity portfolio",
        embedding=[0.1] * 8,
        analysis_status=AnalysisStatus.SUCCESS
    )

    results = service.get_portfolio_analysis_results(portfolio.id)

    assert results.has_analysis is True
    assert results.analysis == "A strong identity portfolio"
    assert results.analysis_status == AnalysisStatus.SUCCESS
    assert results.active_job is None


def test_results_view_includes_active_job(service, seed):
    portfolio = seed.portfolio()
    job = service.tracker.create(portfolio_id=portfolio.id)

    results = service.get_portfolio_analysis_results(portfolio.id)

    assert results.has_analysis is False
    assert results.active_job.job_id == job.id


def test_rate_limit_metrics_cover_all_classes(service):
    metrics = service.get_rate_limit_metrics()

    assert set(metrics) == {"image", "video", "text"}
    assert metrics["video"]["capacity"] == 2


def test_build_without_api_key_fails(test_settings):
    with pytest.raises(ConfigurationException):
        build_analysis_service(test_settings)
