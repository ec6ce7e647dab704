"""Core module initialization."""

from .config_manager import (
    BackendConfig,
    BackendType,
    ConfigManager,
    LoggingConfig,
    SchemaBlobConfig,
    UpdateConfig,
)
from .logging_config import configure_logging, log_with_context, setup_logging

__all__ = [
    "BackendConfig",
    "BackendType",
    "ConfigManager",
    "LoggingConfig",
    "SchemaBlobConfig",
    "UpdateConfig",
    "configure_logging",
    "log_with_context",
    "setup_logging",
]
