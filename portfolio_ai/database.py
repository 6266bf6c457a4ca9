from sqlmodel import SQLModel

from portfolio_ai.config import settings
from portfolio_ai.core.logging_config import get_logger
from portfolio_ai.db.session import DatabaseSession
import portfolio_ai.models  # noqa: F401  registers tables on the metadata

logger = get_logger(__name__)


def create_db_and_tables(db: DatabaseSession) -> None:
    SQLModel.metadata.create_all(db.engine)
    logger.info("Database tables created")


_db_session = None


def get_db_session() -> DatabaseSession:
    """Process-wide session factory built from settings on first use."""
    global _db_session
    if _db_session is None:
        _db_session = DatabaseSession(settings.database_url)
    return _db_session
