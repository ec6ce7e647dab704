"""
Configuration management for SchemaBlob.

Handles loading, validation, and access to configuration settings.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator, ValidationError, ConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "SCHEMABLOB_"


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BackendType(str, Enum):
    """Supported storage backend types."""
    MEMORY = "memory"
    FILE = "file"
    AZURE = "azure"


class BackendConfig(BaseModel):
    """Storage backend configuration."""
    type: BackendType = BackendType.FILE
    path: str = Field(default="./schemablob-data", description="Root directory of the file backend")
    lock_timeout: float = Field(default=10.0, gt=0.0)
    connection_string: Optional[str] = None
    account_url: Optional[str] = None
    account_key: Optional[str] = None

    @model_validator(mode="after")
    def check_azure_settings(self) -> "BackendConfig":
        """Azure needs either a connection string or an account URL."""
        if self.type == BackendType.AZURE and not (self.connection_string or self.account_url):
            raise ValueError("azure backend requires connection_string or account_url")
        return self


class UpdateConfig(BaseModel):
    """Optimistic update retry policy."""
    max_attempts: int = Field(default=5, ge=1, le=100)
    base_delay: float = Field(default=0.0, ge=0.0, description="Initial backoff between conflicting attempts in seconds")
    max_delay: float = Field(default=0.5, ge=0.0)
    jitter: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "text"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'schemablob.update': 'DEBUG'}"
    )


class SchemaBlobConfig(BaseModel):
    """Main SchemaBlob configuration schema."""

    version: str = Field(default="0.1.0", description="Configuration version")

    backend: BackendConfig = Field(default_factory=BackendConfig)

    update: UpdateConfig = Field(default_factory=UpdateConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    schema_base_url: str = Field(
        default="https://schemablob.local/schemas/",
        description="Base URL under which container schemas are referenced"
    )

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version format."""
        parts = v.split(".")
        if len(parts) != 3:
            raise ValueError("Version must be in format x.y.z")
        for part in parts:
            if not part.isdigit():
                raise ValueError("Version components must be numeric")
        return v

    model_config = ConfigDict(use_enum_values=True)


class ConfigManager:
    """
    Manages SchemaBlob configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (SCHEMABLOB_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[SchemaBlobConfig] = None
        self._config_file: Optional[Path] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> SchemaBlobConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Dictionary of CLI argument overrides

        Returns:
            Validated SchemaBlobConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.debug("Loading SchemaBlob configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.info(f"Applied {len(cli_overrides)} CLI argument overrides")

        try:
            self._config = SchemaBlobConfig(**config_dict)
            self._log_configuration()
            return self._config
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        # Backend configuration
        if backend_type := os.getenv(f"{ENV_PREFIX}BACKEND"):
            config.setdefault("backend", {})["type"] = backend_type.lower()
        if path := os.getenv(f"{ENV_PREFIX}PATH"):
            config.setdefault("backend", {})["path"] = path
        if connection_string := os.getenv(f"{ENV_PREFIX}CONNECTION_STRING"):
            config.setdefault("backend", {})["connection_string"] = connection_string

        # Update policy
        if max_attempts := os.getenv(f"{ENV_PREFIX}MAX_ATTEMPTS"):
            config.setdefault("update", {})["max_attempts"] = int(max_attempts)

        # Logging configuration
        if log_level := os.getenv(f"{ENV_PREFIX}LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_file := os.getenv(f"{ENV_PREFIX}LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        if base_url := os.getenv(f"{ENV_PREFIX}SCHEMA_BASE_URL"):
            config["schema_base_url"] = base_url

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _log_configuration(self) -> None:
        """Log the loaded configuration (with secrets redacted)."""
        if not self._config:
            return

        config_dict = self._config.model_dump()

        backend = config_dict.get("backend", {})
        for secret in ("connection_string", "account_key"):
            if backend.get(secret):
                backend[secret] = "***REDACTED***"

        logger.debug(f"Active configuration: {json.dumps(config_dict, indent=2)}")

    def get_config(self) -> SchemaBlobConfig:
        """
        Get the loaded configuration.

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> SchemaBlobConfig:
        """Reload configuration from the same sources."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file)
