#!/usr/bin/env python3
"""
Analysis Worker - Runs one portfolio or project analysis job to completion
"""

import sys
import asyncio
import logging
import argparse
from typing import Optional

from portfolio_ai.config import Settings, settings as default_settings
from portfolio_ai.core.exceptions import PortfolioAIException
from portfolio_ai.core.logging_config import get_logger, setup_logging
from portfolio_ai.database import create_db_and_tables, get_db_session
from portfolio_ai.domain.analysis.results import JobStatusView
from portfolio_ai.models import JobStatus
from portfolio_ai.services.analysis_service import AnalysisService, build_analysis_service

logger = get_logger(__name__)


class AnalysisWorker:
    """Starts a job through the analysis service and follows it until it ends"""

    def __init__(self, service: AnalysisService, poll_interval: float = 5.0, drain_timeout: float = 30.0):
        self.service = service
        self.poll_interval = poll_interval
        self.drain_timeout = drain_timeout

    async def run(self, portfolio_id: Optional[int] = None, project_id: Optional[int] = None) -> JobStatusView:
        if portfolio_id is not None:
            job_id = await self.service.start_portfolio_analysis(portfolio_id)
        elif project_id is not None:
            job_id = await self.service.start_project_analysis(project_id)
        else:
            raise ValueError("portfolio_id or project_id is required")

        logger.info(f"Following analysis job {job_id}", job_id=job_id)

        try:
            view = self.service.get_job_status(job_id)
            last_progress = -1.0
            while not JobStatus(view.status).is_terminal:
                await asyncio.sleep(self.poll_interval)
                view = self.service.get_job_status(job_id)
                if view.progress != last_progress:
                    logger.info(f"Job {job_id}: {view.status.value} {view.progress:.0f}% - {view.message}")
                    last_progress = view.progress
        finally:
            await self.service.drain(timeout=self.drain_timeout)

        return self.service.get_job_status(job_id)


async def _run(args, settings: Settings) -> JobStatusView:
    db = get_db_session()
    create_db_and_tables(db)
    service = build_analysis_service(settings, db=db)
    worker = AnalysisWorker(service, poll_interval=args.poll_interval, drain_timeout=settings.drain_timeout_seconds)
    return await worker.run(portfolio_id=args.portfolio, project_id=args.project)


def main(argv=None):
    """CLI entry point"""
    parser = argparse.ArgumentParser(description='Portfolio Analysis Worker')
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument('--portfolio', type=int, help='Portfolio id to analyze')
    target.add_argument('--project', type=int, help='Project id to analyze')
    parser.add_argument('--poll-interval', type=float, default=5.0,
                        help='Seconds between job status checks')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')

    args = parser.parse_args(argv)

    settings = default_settings
    setup_logging(log_level="DEBUG" if args.verbose else settings.log_level, log_format="text")
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        view = asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
        sys.exit(130)
    except PortfolioAIException as e:
        logger.error(f"Analysis could not run: {e.message}", error=e.to_dict())
        sys.exit(2)

    print(view.model_dump_json(indent=2))
    sys.exit(0 if view.status == JobStatus.COMPLETED else 1)


if __name__ == "__main__":
    main()
