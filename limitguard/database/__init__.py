"""
Database utilities and configuration.
"""

from limitguard.database.base import Base
from limitguard.database.config import DatabaseSettings, get_database_settings
from limitguard.database.connection import DatabaseConfig, DatabaseConnection

__all__ = [
    "Base",
    "DatabaseConfig",
    "DatabaseConnection",
    "DatabaseSettings",
    "get_database_settings",
]
