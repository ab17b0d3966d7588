"""
Database configuration and connection management.

Creates the SQLAlchemy engine and session factory used by the SQL storage
backend. Any SQLAlchemy URL works; SQLite is the local default.
"""

from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .logging_config import get_logger
from .models import Base

logger = get_logger(__name__)


def get_connect_args(db_url: str) -> dict:
    """
    Get database-specific connection arguments.

    Args:
        db_url: Database connection URL

    Returns:
        Connection arguments dict
    """
    if db_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def get_engine_kwargs(db_url: str) -> dict:
    """Pool settings; SQLite uses its default pool."""
    if db_url.startswith("sqlite"):
        return {}
    return {"pool_size": settings.DATABASE_POOL_SIZE, "pool_pre_ping": True}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=get_connect_args(settings.DATABASE_URL),
    **get_engine_kwargs(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create all tables that do not exist yet."""
    logger.info("Initializing database schema")
    Base.metadata.create_all(bind=engine, checkfirst=True)


def get_db() -> Generator[Session, None, None]:
    """
    Provide a database session for a request.

    Yields:
        SQLAlchemy session, closed when the request finishes
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """Run a trivial query to confirm the database is reachable."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
