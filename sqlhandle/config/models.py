"""Pydantic models for SQLHandle configuration files."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
    AliasChoices,
    ConfigDict,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"


class ConnectionPoolConfig(BaseModel):
    """Connection pool configuration handed to the SQLAlchemy engine."""
    max_connections: int = Field(default=5, ge=1, le=1000, description="Maximum number of pooled connections")
    max_overflow: int = Field(default=0, ge=0, le=100, description="Connections allowed beyond max_connections")
    timeout: int = Field(default=30, ge=1, le=3600, description="Seconds to wait for a pooled connection")
    pool_recycle: int = Field(default=3600, ge=-1, le=86400, description="Connection recycle time in seconds")
    pool_pre_ping: bool = Field(default=True, description="Validate connections before use")

    @model_validator(mode='after')
    def validate_overflow(self):
        """Never allow more overflow than pooled connections."""
        if self.max_overflow > self.max_connections:
            object.__setattr__(self, 'max_overflow', self.max_connections)
        return self


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    model_config = ConfigDict(populate_by_name=True)

    type: DatabaseType = Field(validation_alias=AliasChoices("type", "driver"))
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    path: Optional[str] = None  # For SQLite
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @model_validator(mode='after')
    def validate_database_config(self):
        """Validate database-specific required fields."""
        if self.type == DatabaseType.SQLITE:
            if not (self.path or self.database):
                raise ValueError("SQLite databases require a 'path' or 'database' field")
            if not self.path:
                object.__setattr__(self, "path", self.database)
            return self

        required_fields = ['host', 'database', 'username', 'password']
        for field in required_fields:
            if not getattr(self, field):
                raise ValueError(f"{self.type.value} databases require '{field}' field")
        return self


class HandleSettings(BaseModel):
    """Defaults applied to every handle opened from a database."""
    force_end_transactions: bool = Field(
        default=True,
        description="Roll back and report transactions left open when a handle closes",
    )
    default_isolation_level: Optional[str] = Field(
        default=None,
        description="Isolation level applied to each new handle's connection",
    )
    read_only: bool = Field(default=False, description="Open connections in read-only mode")
    statement_cache_size: int = Field(
        default=0, ge=0, le=100000,
        description="Compiled statements cached per handle (0 disables caching)",
    )

    @field_validator('default_isolation_level')
    def normalize_isolation_level(cls, v):
        """Accept READ_COMMITTED as well as READ COMMITTED."""
        if v is None:
            return v
        normalized = v.strip().upper().replace('_', ' ')
        allowed = {"READ UNCOMMITTED", "READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"}
        if normalized not in allowed:
            raise ValueError(f"Unknown isolation level '{v}'. Expected one of {sorted(allowed)}")
        return normalized


class SQLHandleConfig(BaseModel):
    """Main configuration model for SQLHandle."""
    databases: Dict[str, DatabaseConfig]
    connection_pools: Dict[str, ConnectionPoolConfig] = Field(
        default_factory=lambda: {"default": ConnectionPoolConfig()}
    )
    default_database: Optional[str] = None
    handle_settings: HandleSettings = Field(default_factory=HandleSettings)

    @model_validator(mode='after')
    def validate_default_database(self):
        """Ensure default_database exists in databases."""
        if self.default_database and self.default_database not in self.databases:
            raise ValueError(f"default_database '{self.default_database}' not found in databases")
        return self

    @model_validator(mode='after')
    def set_default_database(self):
        """Set default database if not specified."""
        if not self.default_database and self.databases:
            self.default_database = next(iter(self.databases))
        return self


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""
    model_config = SettingsConfigDict(env_prefix="SQLHANDLE_", case_sensitive=False)

    log_level: str = Field(default="WARNING")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)
