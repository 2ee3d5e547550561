"""Configuration module for the part inspection package."""

from .logging_config import setup_logging
from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "setup_logging"]
