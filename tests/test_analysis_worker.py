import pytest

from portfolio_ai.models import JobStatus
from portfolio_ai.worker.analysis_worker import AnalysisWorker, main

from conftest import FakeContentProvider


@pytest.mark.asyncio
async def test_worker_follows_portfolio_job(make_service, seed):
    service = make_service(FakeContentProvider())
    portfolio = seed.portfolio()
    seed.project_with_images(portfolio.id, "Worker", ["https://cdn.example.com/w.jpg"])

    view = await AnalysisWorker(service, poll_interval=0.02, drain_timeout=5).run(portfolio_id=portfolio.id)

    assert view.status == JobStatus.COMPLETED
    assert service.tasks.pending == 0


@pytest.mark.asyncio
async def test_worker_reports_failed_project_job(make_service, seed):
    service = make_service(FakeContentProvider())
    portfolio = seed.portfolio()
    project = seed.project(portfolio.id, title="Nothing here")

    view = await AnalysisWorker(service, poll_interval=0.02, drain_timeout=5).run(project_id=project.id)

    assert view.status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_worker_needs_a_target(make_service):
    worker = AnalysisWorker(make_service(FakeContentProvider()))

    with pytest.raises(ValueError):
        await worker.run()


def test_cli_requires_exactly_one_target():
    with pytest.raises(SystemExit) as exc_info:
        main(["--portfolio", "1", "--project", "2"])

    assert exc_info.value.code == 2
