"""
System API

Health and Prometheus endpoints for the analysis service.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from portfolio_ai.api.analysis import get_analysis_service
from portfolio_ai.core.logging_config import get_logger
from portfolio_ai.services.analysis_service import AnalysisService

router = APIRouter(tags=["system"])
logger = get_logger(__name__)


@router.get("/health")
async def health(service: AnalysisService = Depends(get_analysis_service)) -> Dict[str, Any]:
    database_ok = service.store.db.health_check()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": database_ok,
        "background_tasks": service.tasks.pending,
        "rate_limits": service.get_rate_limit_metrics(),
    }


@router.get("/metrics/prometheus")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format for scraping.
    """
    try:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
    except Exception as e:
        logger.error(f"Error generating Prometheus metrics: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to generate metrics: {str(e)}")
