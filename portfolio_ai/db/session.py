"""Centralized database session management."""

import logging
from contextlib import contextmanager
from typing import Generator
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

logger = logging.getLogger(__name__)


class DatabaseSession:
    """Database session factory shared by the store and the API."""

    def __init__(self, database_url: str, pool_size: int = 5, max_overflow: int = 10):
        if database_url.startswith("sqlite"):
            # sqlite uses a single-connection pool and must be shared across threads
            engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                echo=False
            )
        else:
            engine = create_engine(
                database_url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,  # Validate connections
                pool_recycle=3600,   # Recycle connections hourly
                echo=False
            )
        self.engine = engine

    @classmethod
    def from_engine(cls, engine: Engine) -> "DatabaseSession":
        instance = cls.__new__(cls)
        instance.engine = engine
        return instance

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Context manager for transactional database sessions.
        Use for write operations.
        """
        session = Session(self.engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed")
        except Exception as e:
            session.rollback()
            logger.error(f"Database transaction rolled back: {e}")
            raise
        finally:
            session.close()

    @contextmanager
    def read_session(self) -> Generator[Session, None, None]:
        """
        Context manager for read-only database sessions.
        Use for read operations (no commit).
        """
        session = Session(self.engine, expire_on_commit=False)
        try:
            yield session
        except Exception as e:
            logger.error(f"Database read error: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            with self.read_session() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
