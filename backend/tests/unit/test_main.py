"""
Tests for the main FastAPI application.

Covers lifespan startup/shutdown wiring and the health endpoint.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from agentchain import main
from agentchain.main import app, lifespan
from agentchain.models.constants import AgentType


@pytest.mark.unit
class TestMainLifespan:
    """Test application lifespan management."""

    @pytest.fixture
    def mock_lifespan_dependencies(self, test_settings):
        """Centralized mock setup for lifespan tests."""
        with patch("agentchain.main.get_settings", return_value=test_settings), \
             patch("agentchain.main.setup_logging") as mock_setup_logging, \
             patch("agentchain.main.initialize_database", return_value=True) as mock_init_db, \
             patch("agentchain.main.get_history_service") as mock_get_history, \
             patch("agentchain.main.build_default_registry") as mock_build_registry, \
             patch("agentchain.main.ChainOrchestrator") as mock_orchestrator_class, \
             patch("agentchain.main.ChainConfigurationLoader") as mock_loader_class, \
             patch("agentchain.main.set_chain_orchestrator") as mock_set_orchestrator, \
             patch("agentchain.main.reset_history_service") as mock_reset_history:

            mock_registry = Mock()
            mock_registry.close = AsyncMock()
            mock_build_registry.return_value = mock_registry

            mock_orchestrator = Mock()
            mock_orchestrator.shutdown = AsyncMock()
            mock_orchestrator.register_configured_chains.return_value = [Mock(), Mock()]
            mock_orchestrator_class.return_value = mock_orchestrator

            mock_loader_class.return_value.load_chains.return_value = ["chain-a", "chain-b"]

            yield {
                "setup_logging": mock_setup_logging,
                "init_db": mock_init_db,
                "get_history": mock_get_history,
                "registry": mock_registry,
                "orchestrator": mock_orchestrator,
                "loader_class": mock_loader_class,
                "set_orchestrator": mock_set_orchestrator,
                "reset_history": mock_reset_history,
            }

    @pytest.mark.asyncio
    async def test_startup_wires_services_and_registers_chains(self, mock_lifespan_dependencies, test_settings):
        mocks = mock_lifespan_dependencies

        async with lifespan(app):
            mocks["setup_logging"].assert_called_once_with(test_settings.log_level)
            mocks["init_db"].assert_called_once_with(test_settings)
            mocks["set_orchestrator"].assert_called_once_with(mocks["orchestrator"])
            mocks["loader_class"].assert_called_once_with(test_settings.chain_config_path, test_settings)
            mocks["orchestrator"].register_configured_chains.assert_called_once_with(["chain-a", "chain-b"])

    @pytest.mark.asyncio
    async def test_shutdown_cancels_executions_and_releases_resources(self, mock_lifespan_dependencies):
        mocks = mock_lifespan_dependencies

        async with lifespan(app):
            pass

        mocks["orchestrator"].shutdown.assert_awaited_once()
        mocks["registry"].close.assert_awaited_once()
        mocks["set_orchestrator"].assert_called_with(None)
        mocks["reset_history"].assert_called_once()

    @pytest.mark.asyncio
    async def test_shutdown_errors_do_not_block_cleanup(self, mock_lifespan_dependencies):
        mocks = mock_lifespan_dependencies
        mocks["orchestrator"].shutdown.side_effect = RuntimeError("stuck")

        async with lifespan(app):
            pass

        mocks["registry"].close.assert_awaited_once()
        mocks["reset_history"].assert_called_once()

    @pytest.mark.asyncio
    async def test_database_failure_exits(self, mock_lifespan_dependencies):
        mock_lifespan_dependencies["init_db"].return_value = False

        with pytest.raises(SystemExit):
            async with lifespan(app):
                pass

        mock_lifespan_dependencies["set_orchestrator"].assert_not_called()

    @pytest.mark.asyncio
    async def test_broken_chain_configuration_exits(self, mock_lifespan_dependencies):
        loader = mock_lifespan_dependencies["loader_class"].return_value
        loader.load_chains.side_effect = ValueError("bad yaml")

        with pytest.raises(SystemExit):
            async with lifespan(app):
                pass


@pytest.mark.unit
class TestHealthEndpoint:
    """Test the /health endpoint."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def test_not_started_is_degraded(self, client):
        with patch.object(main, "orchestrator", None), \
             patch.object(main, "history_service", None), \
             patch.object(main, "registry", None):
            response = client.get("/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["services"]["orchestrator"] == "not_initialized"
        assert data["services"]["history_service"] == "unhealthy"
        assert data["services"]["agents"] == []

    def test_healthy(self, client):
        mock_history = Mock(is_healthy=True)
        mock_orchestrator = Mock(active_execution_ids=["exec-1", "exec-2"])
        mock_registry = Mock(registered_types=[AgentType.CONTENT, AgentType.TREND])

        with patch.object(main, "orchestrator", mock_orchestrator), \
             patch.object(main, "history_service", mock_history), \
             patch.object(main, "registry", mock_registry):
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "agentchain"
        assert data["active_executions"] == 2
        assert data["services"]["agents"] == ["CONTENT", "TREND"]
        assert data["timestamp"].endswith("Z")

    def test_unhealthy_database_is_degraded(self, client):
        with patch.object(main, "orchestrator", Mock(active_execution_ids=[])), \
             patch.object(main, "history_service", Mock(is_healthy=False)), \
             patch.object(main, "registry", None):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["services"]["history_service"] == "unhealthy"
