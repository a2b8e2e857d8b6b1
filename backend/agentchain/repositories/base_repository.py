"""
Base repository pattern for database operations.

Provides common database operations and session management using SQLModel
for all repository classes in the system.
"""

import logging
from abc import ABC
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import Engine, inspect
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, SQLModel, select

from agentchain.database.init_db import create_database_engine

logger = logging.getLogger(__name__)

# Generic type for SQLModel classes
ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(ABC, Generic[ModelType]):
    """
    Abstract base repository holding the session and primary-key lookup.

    Writes live in the concrete repositories, which need table-specific
    upsert and immutability rules.
    """

    def __init__(self, session: Session, model_class: type[ModelType]):
        """
        Initialize base repository with database session and model class.

        Args:
            session: SQLModel database session
            model_class: The SQLModel class this repository manages
        """
        self.session = session
        self.model_class = model_class

    def get_by_id(self, id_value: Any) -> Optional[ModelType]:
        """
        Retrieve a record by its primary key.

        Args:
            id_value: The primary key value

        Returns:
            The model instance if found, None otherwise
        """
        statement = select(self.model_class).where(
            getattr(self.model_class, self._get_primary_key_field()) == id_value
        )
        return self.session.exec(statement).first()

    def _get_primary_key_field(self) -> str:
        """
        Get the name of the primary key field for this model.

        Returns:
            The primary key field name
        """
        primary_keys = inspect(self.model_class).primary_key
        if not primary_keys:
            raise ValueError(f"No primary key field found for {self.model_class.__name__}")
        return primary_keys[0].name


class DatabaseManager:
    """
    Database connection and session management.

    Provides centralized database configuration and session management
    for all repository classes.
    """

    def __init__(self, database_url: str):
        """
        Initialize database manager with connection URL.

        Args:
            database_url: SQLAlchemy database connection string
        """
        self.database_url = database_url
        self.engine: Optional[Engine] = None
        self.session_factory: Optional[sessionmaker] = None

    def initialize(self) -> None:
        """Initialize database engine and session factory."""
        try:
            self.engine = create_database_engine(self.database_url)
            self.session_factory = sessionmaker(
                bind=self.engine,
                class_=Session,
                expire_on_commit=False
            )

            safe_url = make_url(self.database_url).render_as_string(hide_password=True)
            logger.info(f"Database initialized with URL: {safe_url}")
        except Exception as e:
            logger.error(f"Failed to initialize database: {str(e)}")
            raise

    def create_tables(self) -> None:
        """Create all tables defined by SQLModel models."""
        if not self.engine:
            raise RuntimeError("Database not initialized")

        SQLModel.metadata.create_all(self.engine)
        logger.info("Database tables created successfully")

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            A new SQLModel Session instance
        """
        if not self.session_factory:
            raise RuntimeError("Database not initialized")

        return self.session_factory()

    def close(self) -> None:
        """Close database connections."""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connections closed")
