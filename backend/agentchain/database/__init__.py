"""
Database Package

Contains database initialization and management utilities.
"""

from .init_db import initialize_database

__all__ = ["initialize_database"]
