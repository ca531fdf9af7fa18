"""
Configuration management.
"""

from limitguard.config.logging import configure_logging, get_logger, setup_logging
from limitguard.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "configure_logging", "get_logger", "setup_logging"]
