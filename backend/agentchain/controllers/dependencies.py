"""
Shared controller plumbing: orchestrator injection and error mapping.
"""

from fastapi import HTTPException

from agentchain.services.chain_orchestrator import ChainOrchestrator, get_chain_orchestrator
from agentchain.services.exceptions import (
    ChainDefinitionError,
    ChainNotFoundError,
    ExecutionNotFoundError,
    ExecutionStateError,
)
from agentchain.services.history_service import HistoryServiceInitializationError
from agentchain.utils.logger import get_module_logger

logger = get_module_logger(__name__)


def get_orchestrator() -> ChainOrchestrator:
    """Orchestrator dependency; 503 while the application is still starting."""
    try:
        return get_chain_orchestrator()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=f"Service unavailable: {str(e)}") from e


def to_http_exception(error: Exception, action: str) -> HTTPException:
    """
    Map a service-layer exception onto an HTTP error.

    Args:
        error: Exception raised by the orchestrator
        action: What was being attempted, used in the 500 detail

    Returns:
        HTTPException to raise from the endpoint
    """
    if isinstance(error, ChainDefinitionError):
        return HTTPException(status_code=400, detail=error.to_dict())
    if isinstance(error, (ChainNotFoundError, ExecutionNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ExecutionStateError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ValueError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, (RuntimeError, HistoryServiceInitializationError)):
        return HTTPException(status_code=503, detail=f"Service unavailable: {str(error)}")

    logger.error(f"Failed to {action}: {str(error)}", exc_info=error)
    return HTTPException(status_code=500, detail=f"Failed to {action}: {str(error)}")
