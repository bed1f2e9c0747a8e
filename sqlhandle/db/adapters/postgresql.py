"""PostgreSQL database adapter."""

from typing import Any, Dict, Optional
from urllib.parse import quote_plus

from sqlhandle.config.models import DatabaseConfig, ConnectionPoolConfig
from sqlhandle.db.base import BaseAdapter
from sqlhandle.exceptions import DatabaseError


class PostgreSQLAdapter(BaseAdapter):
    """PostgreSQL database adapter."""

    def __init__(
        self,
        config: DatabaseConfig,
        pool_config: Optional[ConnectionPoolConfig] = None,
    ) -> None:
        """Initialize PostgreSQL adapter."""
        super().__init__(config, pool_config)

        if self.config.port is None:
            self.config.port = 5432

    def get_driver_name(self) -> str:
        """Get the driver name for PostgreSQL."""
        return "psycopg2"

    def build_connection_string(self) -> str:
        """Build PostgreSQL connection string.

        Raises:
            DatabaseError: If required configuration is missing.
        """
        if not all([self.config.host, self.config.database, self.config.username, self.config.password]):
            raise DatabaseError("PostgreSQL requires host, database, username, and password")

        # URL encode password to handle special characters
        password_encoded = quote_plus(self.config.password)

        connection_string = (
            f"postgresql+psycopg2://{self.config.username}:{password_encoded}@"
            f"{self.config.host}:{self.config.port}/{self.config.database}"
        )

        options = {
            k: v for k, v in self.config.options.items()
            if k not in ('connect_timeout', 'application_name')
        }
        if 'sslmode' not in options:
            options['sslmode'] = 'prefer'

        option_string = "&".join([f"{k}={v}" for k, v in options.items()])
        connection_string += f"?{option_string}"

        return connection_string

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get PostgreSQL-specific engine options."""
        return {
            'connect_args': {
                'connect_timeout': self.config.options.get('connect_timeout', 10),
                'application_name': self.config.options.get('application_name', 'sqlhandle'),
            }
        }

    def read_only_statement(self, read_only: bool) -> Optional[str]:
        mode = "READ ONLY" if read_only else "READ WRITE"
        return f"SET SESSION CHARACTERISTICS AS TRANSACTION {mode}"
