"""
Global pytest configuration and fixtures for all tests.

Provides isolated settings, an in-memory history database and cleanup of
process-wide state (settings cache, cancellation marks, orchestrator).
"""

import os
from typing import Generator

import pytest
from sqlmodel import Session, SQLModel, create_engine

# Set testing environment variable as early as possible
os.environ["TESTING"] = "true"

# Import all database models to ensure they're registered with SQLModel.metadata
import agentchain.models.db_models  # noqa: F401,E402
from agentchain.config.settings import Settings, get_settings  # noqa: E402
from agentchain.services import cancellation_tracker  # noqa: E402
from agentchain.services.chain_orchestrator import set_chain_orchestrator  # noqa: E402
from agentchain.services.history_service import ChainHistoryService  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Automatically set up test environment for all tests."""
    os.environ["TESTING"] = "true"
    yield
    if "TESTING" in os.environ:
        del os.environ["TESTING"]


@pytest.fixture(autouse=True)
def reset_global_state():
    """Clear cached settings, cancellation marks and the orchestrator singleton between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    cancellation_tracker._cancelled_executions.clear()
    set_chain_orchestrator(None)


@pytest.fixture
def test_settings() -> Settings:
    """Settings tuned for fast tests: in-memory database and no retry backoff."""
    return Settings(
        database_url="sqlite:///:memory:",
        retry_base_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
        cancellation_grace_seconds=0.5,
        default_step_timeout_seconds=5.0,
        max_parallel_steps=4,
        max_concurrent_executions=4,
    )


@pytest.fixture
def test_database_engine():
    """In-memory database engine with all tables."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def test_database_session(test_database_engine) -> Generator[Session, None, None]:
    with Session(test_database_engine) as session:
        yield session


@pytest.fixture
def history_service(test_settings) -> Generator[ChainHistoryService, None, None]:
    """Initialized history service backed by its own in-memory database."""
    service = ChainHistoryService(test_settings)
    assert service.initialize()
    yield service
    service.close()
