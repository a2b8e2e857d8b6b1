"""
Cancellation Tracker - records explicit cancellation requests per execution.

An execution interrupted while its id is marked here ends CANCELLED; an
execution interrupted by its chain deadline without a mark ends TIMEOUT.
The cancel API marks the execution before signalling the engine, so the
engine can always tell the two apart.
"""

import threading

from agentchain.utils.logger import get_module_logger

logger = get_module_logger(__name__)

_cancelled_executions: set[str] = set()
_lock = threading.Lock()


def mark_cancelled(execution_id: str) -> None:
    """Mark an execution as cancelled by an explicit request."""
    with _lock:
        _cancelled_executions.add(execution_id)
        logger.debug(f"Marked execution {execution_id} as cancel-requested")


def is_cancel_requested(execution_id: str) -> bool:
    """True if cancellation was explicitly requested for the execution."""
    with _lock:
        return execution_id in _cancelled_executions


def clear(execution_id: str) -> None:
    """Clear the tracking for an execution."""
    with _lock:
        _cancelled_executions.discard(execution_id)
