# File: booking_progress/db/session.py
"""
Database session management for the booking progress service.

Usage:
    from booking_progress.db.session import get_db

    # In FastAPI dependency
    def some_endpoint(db: Session = Depends(get_db)):
        ...
"""

import logging
import threading
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from booking_progress.core.config import settings
from booking_progress.db.models import Base

# Configure module logger
logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the configured database.

    SQLite connections get ``check_same_thread`` disabled (FastAPI runs sync
    endpoints on a thread pool) and foreign keys switched on.
    """
    is_sqlite = database_url.startswith("sqlite")
    engine = create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False} if is_sqlite else {},
    )

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    logger.info(f"Using database: {engine.url.render_as_string(hide_password=True)}")
    return engine


engine = create_db_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=True, bind=engine)


# -----------------------------------------------------------------------------
# FastAPI Dependency
# -----------------------------------------------------------------------------


def get_db() -> Generator[Session, None, None]:
    """
    Get a database session with proper resource management.

    Returns:
        SQLAlchemy Session for database operations
    """
    thread_id = threading.get_ident()
    logger.debug(f"Creating DB session for thread {thread_id}")
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Error in get_db for thread {thread_id}: {e}")
        raise
    finally:
        db.close()
        logger.debug(f"Closed DB session for thread {thread_id}")


def init_db(reset: bool = False) -> None:
    """
    Create the schema, optionally dropping every table first.

    Migrations are owned by the hosting platform; this is for local runs
    and tests.
    """
    if reset:
        logger.warning("Dropping all database tables!")
        Base.metadata.drop_all(bind=engine)
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully.")
