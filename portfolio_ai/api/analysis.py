from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel

from portfolio_ai.core.logging_config import get_logger
from portfolio_ai.domain.analysis.results import (
    AnalysisEligibility, JobStatusView, PortfolioAnalysisResults
)
from portfolio_ai.services.analysis_service import AnalysisService

router = APIRouter(prefix="/analysis", tags=["analysis"])
logger = get_logger(__name__)


class JobStarted(BaseModel):
    job_id: str


def get_analysis_service(request: Request) -> AnalysisService:
    return request.app.state.analysis_service


@router.post("/portfolios/{portfolio_id}", response_model=JobStarted, status_code=status.HTTP_202_ACCEPTED)
async def start_portfolio_analysis(
    portfolio_id: int,
    service: AnalysisService = Depends(get_analysis_service)
) -> JobStarted:
    """Start analysis of every project in a portfolio"""
    job_id = await service.start_portfolio_analysis(portfolio_id)
    return JobStarted(job_id=job_id)


@router.post("/projects/{project_id}", response_model=JobStarted, status_code=status.HTTP_202_ACCEPTED)
async def start_project_analysis(
    project_id: int,
    service: AnalysisService = Depends(get_analysis_service)
) -> JobStarted:
    """Start analysis of one project, or return the job already running for it"""
    job_id = await service.start_project_analysis(project_id)
    return JobStarted(job_id=job_id)


@router.get("/jobs/{job_id}", response_model=JobStatusView)
async def get_job_status(
    job_id: str,
    service: AnalysisService = Depends(get_analysis_service)
) -> JobStatusView:
    return service.get_job_status(job_id)


@router.get("/portfolios/{portfolio_id}", response_model=PortfolioAnalysisResults)
async def get_portfolio_analysis(
    portfolio_id: int,
    service: AnalysisService = Depends(get_analysis_service)
) -> PortfolioAnalysisResults:
    return service.get_portfolio_analysis_results(portfolio_id)


@router.get("/portfolios/{portfolio_id}/eligibility", response_model=AnalysisEligibility)
async def get_portfolio_eligibility(
    portfolio_id: int,
    service: AnalysisService = Depends(get_analysis_service)
) -> AnalysisEligibility:
    """Whether the portfolio can be analyzed now, and when it can if not"""
    return service.can_analyze_portfolio(portfolio_id)
