from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from portfolio_ai import __version__
from portfolio_ai.api import analysis, system
from portfolio_ai.config import Settings, settings as default_settings
from portfolio_ai.core.error_handlers import register_exception_handlers
from portfolio_ai.core.logging_config import ContextManager, get_logger, setup_logging
from portfolio_ai.database import create_db_and_tables, get_db_session
from portfolio_ai.services.analysis_service import AnalysisService, build_analysis_service
from portfolio_ai.services.prometheus_metrics import get_metrics

logger = get_logger(__name__)


def create_app(
    service: Optional[AnalysisService] = None,
    settings: Optional[Settings] = None
) -> FastAPI:
    """
    Build the API application.

    When no service is passed, the database and the analysis stack are
    built from settings on startup.
    """
    settings = settings or default_settings
    setup_logging(log_level=settings.log_level, log_format=settings.log_format, log_file=settings.log_file)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        analysis_service = service
        if analysis_service is None:
            db = get_db_session()
            create_db_and_tables(db)
            analysis_service = build_analysis_service(settings, db=db)

        app.state.analysis_service = analysis_service
        get_metrics().set_build_info(__version__)
        logger.info("Portfolio analysis API started")

        yield

        cancelled = await analysis_service.drain(timeout=settings.drain_timeout_seconds)
        logger.info(f"Portfolio analysis API stopped ({cancelled} background tasks cancelled)")

    app = FastAPI(
        title="Portfolio AI",
        description="Hierarchical AI analysis of creator portfolios: media, projects and portfolios.",
        version=__version__,
        lifespan=lifespan,
        tags_metadata=[
            {
                "name": "analysis",
                "description": "Start and follow portfolio and project analysis jobs",
            },
            {
                "name": "system",
                "description": "Health and metrics",
            }
        ]
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or ContextManager.generate_request_id()
        ContextManager.set_context(request_id=request_id, method=request.method, url=request.url.path)
        try:
            response = await call_next(request)
        finally:
            ContextManager.clear_context()
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)
    app.include_router(analysis.router)
    app.include_router(system.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.api_host, port=default_settings.api_port)
