"""
AgentChain - FastAPI Application
Main entry point for the chain orchestration service.
"""

import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from agentchain.config.chain_config import ChainConfigurationLoader
from agentchain.config.settings import get_settings
from agentchain.controllers.analytics_controller import router as analytics_router
from agentchain.controllers.chain_controller import router as chain_router
from agentchain.controllers.execution_controller import router as execution_router
from agentchain.database.init_db import initialize_database
from agentchain.services.agent_registry import AgentCapabilityRegistry, build_default_registry
from agentchain.services.chain_orchestrator import ChainOrchestrator, set_chain_orchestrator
from agentchain.services.history_service import ChainHistoryService, get_history_service, reset_history_service
from agentchain.utils.logger import get_module_logger, setup_logging

logger = get_module_logger(__name__)

try:
    VERSION = version("agentchain")
except PackageNotFoundError:
    VERSION = "dev"

orchestrator: Optional[ChainOrchestrator] = None
history_service: Optional[ChainHistoryService] = None
registry: Optional[AgentCapabilityRegistry] = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global orchestrator, history_service, registry

    settings = get_settings()
    setup_logging(settings.log_level)

    # Chains and executions live in the database, so it is a hard dependency
    if not initialize_database(settings):
        logger.critical("Database initialization failed - exiting to allow restart.")
        sys.exit(1)

    try:
        history_service = get_history_service()
        registry = build_default_registry(settings)
        orchestrator = ChainOrchestrator(history_service, registry, settings)
        set_chain_orchestrator(orchestrator)
    except Exception as e:
        logger.critical(f"Failed to initialize chain orchestrator: {str(e)}. Exiting to allow restart.")
        sys.exit(1)

    # A broken chains file is a configuration error; a missing one is not
    try:
        definitions = ChainConfigurationLoader(settings.chain_config_path, settings).load_chains()
        registered = orchestrator.register_configured_chains(definitions)
        logger.info(f"{len(registered)} configured chains available")
    except Exception as e:
        logger.critical(f"Failed to load chain configuration: {str(e)}")
        sys.exit(1)

    logger.info("AgentChain started successfully!")

    yield

    logger.info("AgentChain shutting down...")
    try:
        await orchestrator.shutdown()
    except Exception as e:
        logger.error(f"Error cancelling active executions: {e}", exc_info=True)

    set_chain_orchestrator(None)
    if registry is not None:
        await registry.close()
    reset_history_service()
    logger.info("AgentChain shutdown complete")


app = FastAPI(
    title="AgentChain",
    description="Multi-agent chain orchestration: DAG validation, execution, handoffs and performance analysis",
    version=VERSION,
    lifespan=lifespan
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chain_router)
app.include_router(execution_router)
app.include_router(analytics_router)


@app.get("/health")
async def health_check(response: Response) -> Dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        - HTTP 200: Database reachable and orchestrator running
        - HTTP 503: Degraded or not yet started
    """
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "service": "agentchain",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
    }

    history_status = "healthy" if history_service is not None and history_service.is_healthy else "unhealthy"
    if orchestrator is None:
        orchestrator_status = "not_initialized"
        active_executions = 0
    else:
        orchestrator_status = "healthy"
        active_executions = len(orchestrator.active_execution_ids)

    health_status["services"] = {
        "history_service": history_status,
        "orchestrator": orchestrator_status,
        "agents": [agent_type.value for agent_type in registry.registered_types] if registry else [],
    }
    health_status["active_executions"] = active_executions

    if history_status != "healthy" or orchestrator_status != "healthy":
        health_status["status"] = "degraded"
        response.status_code = 503

    return health_status


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "agentchain.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
