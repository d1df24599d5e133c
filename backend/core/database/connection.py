"""
Database connection and session management.
"""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy.pool import StaticPool
from typing import Generator, Optional
import logging
import time

from backend.core.database.models import Base

logger = logging.getLogger(__name__)

engine = None
SessionLocal = None


def _normalize_url(database_url: str) -> str:
    # Railway/Heroku style URLs
    if database_url.startswith('postgres://'):
        return database_url.replace('postgres://', 'postgresql://', 1)
    return database_url


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith('sqlite'):
        kwargs = {'connect_args': {'check_same_thread': False}}
        if ':memory:' in database_url or database_url == 'sqlite://':
            # One shared connection, otherwise every session sees an empty db
            kwargs['poolclass'] = StaticPool
        return kwargs
    return {
        'pool_pre_ping': True,  # Verify connections before using
        'pool_size': 5,
        'max_overflow': 10,
        'pool_recycle': 3600,
    }


def init_db(database_url: Optional[str] = None, max_retries: int = 3, retry_delay: float = 1.0):
    """
    Initialize the engine and session factory, creating tables if missing.
    Call this once at application startup.

    Args:
        database_url: Overrides settings.database_url
        max_retries: Number of connection attempts
        retry_delay: Seconds to wait between retries

    Raises:
        RuntimeError: If connection fails after all retries
    """
    global engine, SessionLocal

    if database_url is None:
        from backend.core.config import get_settings
        database_url = get_settings().database_url
    database_url = _normalize_url(database_url)

    for attempt in range(max_retries):
        try:
            engine = create_engine(database_url, echo=False, **_engine_kwargs(database_url))

            # Test connection
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            Base.metadata.create_all(engine)
            SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

            logger.info(f"Database initialized: {database_url.split('@')[1] if '@' in database_url else database_url}")
            return

        except (OperationalError, DBAPIError) as e:
            logger.warning(f"Database connection attempt {attempt + 1}/{max_retries} failed: {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_delay * (attempt + 1))
            else:
                logger.error(f"Database initialization failed after {max_retries} attempts")
                raise RuntimeError(f"Failed to connect to database: {e}") from e


def get_session_factory() -> sessionmaker:
    """Session factory for work that outlives a request (background interceptors)."""
    if not SessionLocal:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Get a database session (FastAPI dependency).

    Usage:
        @router.get("/settings")
        def read(db: Session = Depends(get_db)):
            ...
    """
    if not SessionLocal:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    db = SessionLocal()
    try:
        yield db
    except (OperationalError, DBAPIError) as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()
