"""
Repository package for database abstraction layer.

Provides CRUD and query operations for chains and their execution history.
"""

from .base_repository import BaseRepository, DatabaseManager
from .chain_repository import ChainRepository

__all__ = ["BaseRepository", "ChainRepository", "DatabaseManager"]
