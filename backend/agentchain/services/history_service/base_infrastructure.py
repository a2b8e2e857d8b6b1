"""Base infrastructure for history service operations."""

import logging
import random
import time
from contextlib import contextmanager
from typing import Callable, Final, Generator, Optional, TypeVar

from agentchain.config.settings import Settings, get_settings
from agentchain.repositories.base_repository import DatabaseManager
from agentchain.repositories.chain_repository import ChainRepository

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Transient errors worth another attempt (both SQLite and PostgreSQL)
RETRYABLE_KEYWORDS: Final[tuple[str, ...]] = (
    'database is locked',
    'database table is locked',
    'deadlock detected',
    'could not obtain lock',
    'serialization failure',
    'connection reset',
    'connection timeout',
    'server closed the connection',
)


class BaseHistoryInfra:
    """Core infrastructure: DB access, retry logic, health tracking."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings: Settings = settings or get_settings()
        self.db_manager: Optional[DatabaseManager] = None
        self._initialization_attempted: bool = False
        self._is_healthy: bool = False
        self.max_retries: int = 3
        self.base_delay: float = 0.05
        self.max_delay: float = 1.0

    @property
    def is_healthy(self) -> bool:
        return self._is_healthy

    def initialize(self) -> bool:
        """Initialize database connection and schema."""
        if self._initialization_attempted:
            return self._is_healthy

        self._initialization_attempted = True

        try:
            self.db_manager = DatabaseManager(self.settings.database_url)
            self.db_manager.initialize()
            self.db_manager.create_tables()
            self._is_healthy = True
            logger.info("History service initialized successfully")
            return True

        except Exception as e:
            logger.error(f"Failed to initialize history service: {str(e)}")
            self._is_healthy = False
            return False

    def close(self) -> None:
        if self.db_manager:
            self.db_manager.close()
        self._is_healthy = False

    def _is_retryable_error(self, exc: Exception) -> bool:
        """Determine if a database error is transient and worth retrying."""
        error_msg = str(exc).lower()
        return any(keyword in error_msg for keyword in RETRYABLE_KEYWORDS)

    @contextmanager
    def get_repository(self) -> Generator[ChainRepository, None, None]:
        """
        Context manager yielding a repository bound to a fresh session.

        Raises:
            RuntimeError: If the database is not initialized or unhealthy
        """
        if not self._is_healthy or not self.db_manager:
            raise RuntimeError("History database is not available")

        session = self.db_manager.get_session()
        try:
            yield ChainRepository(session)
        except Exception as e:
            logger.error(f"History repository error: {str(e)}")
            session.rollback()
            raise
        finally:
            session.close()

    def _retry_database_operation(self, operation_name: str, operation_func: Callable[[], T]) -> T:
        """
        Run a database operation, retrying transient failures with exponential backoff.

        Non-transient errors, and transient ones that outlast the retry budget,
        are re-raised to the caller.
        """
        for attempt in range(self.max_retries + 1):
            try:
                return operation_func()
            except Exception as e:
                if not self._is_retryable_error(e) or attempt == self.max_retries:
                    logger.error(f"Database operation '{operation_name}' failed after {attempt + 1} attempts: {str(e)}")
                    raise

                delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                total_delay = delay + random.uniform(0, delay * 0.1)
                logger.warning(
                    f"Database operation '{operation_name}' failed on attempt {attempt + 1}, "
                    f"retrying in {total_delay:.2f}s: {str(e)}"
                )
                time.sleep(total_delay)

        raise RuntimeError(f"Database operation '{operation_name}' exhausted retries")
