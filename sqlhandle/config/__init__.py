"""Configuration management for SQLHandle."""

from sqlhandle.config.models import (
    DatabaseType,
    DatabaseConfig,
    ConnectionPoolConfig,
    HandleSettings,
    SQLHandleConfig,
    EnvironmentSettings,
)
from sqlhandle.config.parser import (
    ConfigParser,
    get_config,
    validate_config_file,
    create_sample_config,
)
from sqlhandle.config.registry import ConfigBase, ConfigRegistry, Configurable

__all__ = [
    # Models
    "DatabaseType",
    "DatabaseConfig",
    "ConnectionPoolConfig",
    "HandleSettings",
    "SQLHandleConfig",
    "EnvironmentSettings",
    # Parser
    "ConfigParser",
    "get_config",
    "validate_config_file",
    "create_sample_config",
    # Runtime registry
    "ConfigBase",
    "ConfigRegistry",
    "Configurable",
]
