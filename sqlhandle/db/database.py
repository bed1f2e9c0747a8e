"""Database: the configured entry point that opens handles."""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

from sqlhandle.config.models import ConnectionPoolConfig, HandleSettings, SQLHandleConfig
from sqlhandle.config.registry import ConfigRegistry, Configurable
from sqlhandle.db.base import BaseAdapter
from sqlhandle.db.connection import AdapterFactory
from sqlhandle.db.handle import Handle
from sqlhandle.db.handles import Handles
from sqlhandle.db.statements import CachingStatementBuilder, DefaultStatementBuilder, StatementBuilder
from sqlhandle.db.transaction import LocalTransactionHandler, TransactionHandler, TransactionIsolationLevel
from sqlhandle.exceptions import add_suppressed

logger = logging.getLogger(__name__)


class Database(Configurable):
    """Opens handles against one configured database.

    Every handle gets a child copy of this database's ``ConfigRegistry``, so
    configuring a handle never affects its siblings, while configuring the
    database affects every handle opened afterwards.

        db = Database.create("sqlite:///data/app.db")
        with db.open() as handle:
            handle.execute("CREATE TABLE t (id INTEGER)")
    """

    def __init__(
        self,
        adapter: BaseAdapter,
        config: Optional[ConfigRegistry] = None,
        transaction_handler: Optional[TransactionHandler] = None,
        handle_settings: Optional[HandleSettings] = None,
    ) -> None:
        self.adapter = adapter
        self.handle_settings = handle_settings or HandleSettings()
        self._config = config or ConfigRegistry()
        self._transaction_handler = transaction_handler or LocalTransactionHandler()
        self._statement_builder_factory: Callable[[], StatementBuilder] = self._default_statement_builder

        self._config.get(Handles).force_end_transactions = self.handle_settings.force_end_transactions

    @classmethod
    def create(
        cls,
        url: str,
        pool_config: Optional[ConnectionPoolConfig] = None,
        handle_settings: Optional[HandleSettings] = None,
    ) -> "Database":
        """Create a database from a SQLAlchemy style URL."""
        return cls(AdapterFactory.create_from_url(url, pool_config), handle_settings=handle_settings)

    @classmethod
    def from_config(
        cls,
        config: Optional[SQLHandleConfig] = None,
        db_name: Optional[str] = None,
        config_path: Optional[Union[str, Path]] = None,
    ) -> "Database":
        """Create a database from a loaded configuration, or from a config file.

        Args:
            config: Parsed configuration. Loaded with ``get_config`` when None.
            db_name: Name under ``databases``; the default database when None.
            config_path: Configuration file used when ``config`` is None.
        """
        if config is None:
            from sqlhandle.config import get_config
            config = get_config(config_path)

        adapter = AdapterFactory.create_from_config(config, db_name)
        return cls(adapter, handle_settings=config.handle_settings)

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Database {self.adapter.config.type.value}>"

    def _current_config(self) -> ConfigRegistry:
        return self._config

    @property
    def transaction_handler(self) -> TransactionHandler:
        return self._transaction_handler

    def set_transaction_handler(self, handler: TransactionHandler) -> "Database":
        """Use ``handler`` for handles opened from now on."""
        self._transaction_handler = handler
        return self

    def set_statement_builder_factory(self, factory: Callable[[], StatementBuilder]) -> "Database":
        """Build each new handle's statement builder with ``factory``."""
        self._statement_builder_factory = factory
        return self

    def _default_statement_builder(self) -> StatementBuilder:
        if self.handle_settings.statement_cache_size > 0:
            return CachingStatementBuilder(self.handle_settings.statement_cache_size)
        return DefaultStatementBuilder()

    def open(self) -> Handle:
        """Open a new handle on a fresh connection. The caller must close it.

        Raises:
            ConnectionResourceError: If no connection can be acquired or prepared.
        """
        start = time.perf_counter()
        connection = self.adapter.open_connection()

        try:
            level = TransactionIsolationLevel.from_value(self.handle_settings.default_isolation_level)
            if level != TransactionIsolationLevel.UNKNOWN:
                connection.set_isolation_level(level.value)
            if self.handle_settings.read_only:
                connection.set_read_only(True)

            handle = Handle(
                self._config.create_copy(),
                connection,
                self._transaction_handler,
                self._statement_builder_factory(),
                database=self,
            )
        except Exception as error:
            try:
                connection.close()
            except Exception as close_error:
                add_suppressed(error, close_error)
            raise

        logger.debug(f"Handle [{handle}] obtained in {(time.perf_counter() - start) * 1000:.2f}ms")
        return handle

    def with_handle(self, callback: Callable[[Handle], Any]) -> Any:
        """Open a handle, return ``callback(handle)`` and close the handle."""
        handle = self.open()
        try:
            result = callback(handle)
        except Exception as error:
            try:
                handle.close()
            except Exception as close_error:
                add_suppressed(error, close_error)
            raise
        handle.close()
        return result

    def use_handle(self, consumer: Callable[[Handle], None]) -> None:
        self.with_handle(consumer)

    def in_transaction(
        self,
        callback: Callable[[Handle], Any],
        level: Union[TransactionIsolationLevel, str, None] = None,
    ) -> Any:
        """Run ``callback`` in a transaction on a fresh handle and return its result."""
        return self.with_handle(lambda handle: handle.in_transaction(callback, level=level))

    def use_transaction(
        self,
        consumer: Callable[[Handle], None],
        level: Union[TransactionIsolationLevel, str, None] = None,
    ) -> None:
        self.in_transaction(consumer, level=level)

    def with_extension(self, extension_type: type, callback: Callable[[Any], Any]) -> Any:
        """Attach ``extension_type`` to a fresh handle and return ``callback(extension)``."""
        return self.with_handle(lambda handle: callback(handle.attach(extension_type)))

    def use_extension(self, extension_type: type, consumer: Callable[[Any], None]) -> None:
        self.with_extension(extension_type, consumer)

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        self.adapter.close()
        logger.info(f"Closed {self!r}")
