"""
Database Initialization Module

Handles engine creation and schema creation for chain history storage.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from sqlalchemy import Engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, text

from agentchain.config.settings import Settings, get_settings

# Import all SQLModel table classes to ensure they are registered for schema creation
from agentchain.models.db_models import AgentChain, AgentHandoff, ChainExecution, StepExecution  # noqa: F401

logger = logging.getLogger(__name__)


def detect_database_type(database_url: str) -> str:
    """
    Detect database type from connection URL.

    Args:
        database_url: Database connection string

    Returns:
        Database type ('postgresql' or 'sqlite')

    Raises:
        ValueError: For unsupported database schemes
    """
    scheme = urlparse(database_url).scheme.lower()

    if scheme.startswith('postgresql'):
        return 'postgresql'
    elif scheme.startswith('sqlite'):
        return 'sqlite'
    else:
        raise ValueError(f"Unsupported database scheme: {scheme}")


def create_database_engine(database_url: str) -> Engine:
    """
    Create database engine with type-specific options.

    Args:
        database_url: Database connection string

    Returns:
        SQLAlchemy engine configured for the database type
    """
    db_type = detect_database_type(database_url)

    if db_type == 'postgresql':
        return create_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            connect_args={
                "application_name": "agentchain",
                "options": "-c timezone=UTC"
            }
        )

    connect_args = {"check_same_thread": False}

    # In-memory SQLite must share one connection or every session sees an empty database
    if ":memory:" in database_url:
        return create_engine(
            database_url,
            echo=False,
            poolclass=StaticPool,
            connect_args=connect_args
        )

    engine = create_engine(database_url, echo=False, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_database_tables(database_url: str) -> bool:
    """
    Create database tables using SQLModel metadata.

    Args:
        database_url: Database connection string

    Returns:
        True if tables created successfully, False otherwise
    """
    try:
        engine = create_database_engine(database_url)
        SQLModel.metadata.create_all(engine)

        with Session(engine) as session:
            session.exec(text("SELECT 1")).first()

        logger.info(f"Database tables created successfully for: {database_url.split('/')[-1]}")
        return True

    except SQLAlchemyError as e:
        logger.error(f"SQLAlchemy error during table creation: {str(e)}")
        return False


def initialize_database(settings: Optional[Settings] = None) -> bool:
    """
    Initialize the history database based on configuration.

    Returns:
        True if initialization successful or disabled, False if failed
    """
    settings = settings or get_settings()

    if not settings.history_enabled:
        logger.info("History disabled - skipping database initialization")
        return True

    if not settings.database_url:
        logger.error("Database URL not configured but history is enabled")
        return False

    success = create_database_tables(settings.database_url)
    if success:
        logger.info(f"History database ready: {settings.database_url.split('/')[-1]}")
    else:
        logger.error("History database initialization failed")
    return success
