"""History Service - stores chains and execution records."""

import threading
from typing import Optional

from agentchain.services.history_service.history_service import ChainHistoryService

_history_service: Optional[ChainHistoryService] = None
_history_service_lock: threading.Lock = threading.Lock()


class HistoryServiceInitializationError(Exception):
    """Raised when ChainHistoryService initialization fails."""

    pass


def get_history_service() -> ChainHistoryService:
    """Get global history service instance.

    Uses double-checked locking for thread-safe lazy initialization.

    Returns:
        ChainHistoryService: The singleton instance.

    Raises:
        HistoryServiceInitializationError: If initialization fails.
    """
    global _history_service

    if _history_service is not None:
        return _history_service

    with _history_service_lock:
        existing = _history_service
        if existing is not None:
            return existing

        service = ChainHistoryService()
        if not service.initialize():
            raise HistoryServiceInitializationError(
                "Failed to initialize ChainHistoryService. Check logs for details."
            )

        _history_service = service
        return service


def reset_history_service() -> None:
    """Drop the singleton so the next call builds a fresh service."""
    global _history_service
    with _history_service_lock:
        if _history_service is not None:
            _history_service.close()
        _history_service = None


__all__ = [
    "ChainHistoryService",
    "HistoryServiceInitializationError",
    "get_history_service",
    "reset_history_service",
]
