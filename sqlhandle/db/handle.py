"""The handle: one database session bound to one connection."""

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional, Union

from sqlhandle.config.registry import ConfigRegistry, Configurable
from sqlhandle.db.context import ThreadScoped
from sqlhandle.db.handles import Handles, TransactionCallback, on_commit, on_rollback
from sqlhandle.db.resource import ConnectionResource
from sqlhandle.db.statements import (
    Batch,
    Call,
    PreparedBatch,
    Query,
    Script,
    StatementBuilder,
    Update,
)
from sqlhandle.db.transaction import TransactionHandler, TransactionIsolationLevel
from sqlhandle.exceptions import (
    CloseError,
    ConnectionResourceError,
    HandleClosedError,
    NoSuchExtensionError,
    ConnectionManipulationError,
    TransactionLeakError,
    TransactionStateError,
    add_suppressed,
)
from sqlhandle.extension.registry import ConstantHandleSupplier, ExtensionMethod, Extensions

if TYPE_CHECKING:
    from sqlalchemy.engine import Inspector

    from sqlhandle.db.database import Database

logger = logging.getLogger(__name__)

IsolationLevelLike = Union[TransactionIsolationLevel, str, None]


def _ms_since(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class Handle(Configurable):
    """A database session that owns one open connection.

    All statement creation, transaction control and extension attachment go
    through the handle. Configuration and the running extension method are
    tracked per thread, so one handle can be passed between threads that
    take turns using it. Transaction calls are not synchronized.
    """

    def __init__(
        self,
        config: ConfigRegistry,
        connection: ConnectionResource,
        transaction_handler: TransactionHandler,
        statement_builder: StatementBuilder,
        database: Optional["Database"] = None,
    ) -> None:
        self._database = database
        self._connection = connection
        self._local_config: ThreadScoped[ConfigRegistry] = ThreadScoped(lambda: config)
        self._local_extension_method: ThreadScoped[ExtensionMethod] = ThreadScoped()
        self._statement_builder = statement_builder
        self._closed = False

        self._transactions = transaction_handler.specialize(self)
        # A handle opened inside someone else's transaction must not end it on close.
        self._force_end_transactions = not self._transactions.is_in_transaction(self)

    def __repr__(self) -> str:
        return f"<Handle {id(self):#x}{' closed' if self._closed else ''}>"

    def __enter__(self) -> "Handle":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    # -- accessors ---------------------------------------------------------

    @property
    def database(self) -> Optional["Database"]:
        return self._database

    @property
    def connection(self) -> ConnectionResource:
        return self._connection

    @property
    def transaction_handler(self) -> TransactionHandler:
        return self._transactions

    @property
    def statement_builder(self) -> StatementBuilder:
        return self._statement_builder

    def set_statement_builder(self, builder: StatementBuilder) -> "Handle":
        self._statement_builder = builder
        return self

    def _current_config(self) -> ConfigRegistry:
        return self._local_config.get()

    def set_config(self, config: ConfigRegistry) -> "Handle":
        """Replace the configuration seen by the calling thread only."""
        self._local_config.set(config)
        return self

    def get_extension_method(self) -> Optional[ExtensionMethod]:
        """The extension method running on this handle in the calling thread, if any."""
        return self._local_extension_method.get()

    def set_extension_method(self, extension_method: Optional[ExtensionMethod]) -> None:
        self._local_extension_method.set(extension_method)

    def is_closed(self) -> bool:
        return self._closed

    def ensure_open(self) -> None:
        if self._closed:
            raise HandleClosedError(f"Handle {self!r} is closed")

    # -- lifecycle ---------------------------------------------------------

    def close(self) -> None:
        """Close the handle, its statement builder and its connection.

        Every resource is released even when an earlier step fails; the
        failures are reported together as a ``CloseError``. A transaction
        left open is rolled back and reported as ``TransactionLeakError``.
        Closing a closed handle does nothing.
        """
        if self._closed:
            return

        suppressed: List[Exception] = []
        was_in_transaction = False

        try:
            if self._force_end_transactions and self.get_config(Handles).force_end_transactions:
                try:
                    was_in_transaction = self.is_in_transaction()
                except Exception as e:
                    logger.error(f"Handle [{self}] could not check transaction status on close: {e}")
                    suppressed.append(e)

            self._local_extension_method.remove()
            self._local_config.remove()

            if was_in_transaction:
                logger.warning(f"Handle [{self}] closed with an open transaction, rolling back")
                try:
                    self.rollback()
                except Exception as e:
                    logger.error(f"Handle [{self}] rollback on close failed: {e}")
                    suppressed.append(e)

            try:
                self._statement_builder.close(self._connection)
            except Exception as e:
                logger.error(f"Handle [{self}] statement builder close failed: {e}")
                suppressed.append(e)

            try:
                self._connection.close()
            except Exception as e:
                raise CloseError("Unable to close connection", cause=e, suppressed=suppressed) from e

            if suppressed:
                primary = suppressed.pop(0)
                raise CloseError(
                    "Failed to clear transaction status on close",
                    cause=primary,
                    suppressed=suppressed,
                ) from primary

            if was_in_transaction:
                raise TransactionLeakError(
                    "Improper transaction handling detected: a handle with an open transaction "
                    "was closed. Transactions must be committed or rolled back before closing "
                    "the handle. The transaction has been rolled back. This check can be "
                    "disabled with Handles.force_end_transactions = False."
                )
        finally:
            # The rollback above may have repopulated the calling thread's config slot.
            self._local_config.remove()
            self._closed = True
            logger.debug(f"Handle [{self}] released")

    # -- statements --------------------------------------------------------

    def create_query(self, sql: str) -> Query:
        return Query(self, sql)

    def create_update(self, sql: str) -> Update:
        return Update(self, sql)

    def create_call(self, sql: str) -> Call:
        return Call(self, sql)

    def create_batch(self) -> Batch:
        return Batch(self)

    def prepare_batch(self, sql: str) -> PreparedBatch:
        return PreparedBatch(self, sql)

    def create_script(self, sql: str, delimiter: str = ";") -> Script:
        return Script(self, sql, delimiter)

    def select(self, sql: str, **params: Any) -> Query:
        """Create a query with named parameters already bound."""
        query = self.create_query(sql)
        query.bind_map(params)
        return query

    def execute(self, sql: str, **params: Any) -> int:
        """Execute a statement with named parameters and return the affected row count."""
        update = self.create_update(sql)
        update.bind_map(params)
        return update.execute()

    def query_metadata(self, fn: Callable[["Inspector"], Any]) -> Any:
        """Return ``fn`` applied to a schema inspector for this handle's connection.

            tables = handle.query_metadata(lambda inspector: inspector.get_table_names())

        Raises:
            DatabaseError: If the metadata lookup fails.
        """
        self.ensure_open()
        return self._connection.query_metadata(fn)

    # -- transactions ------------------------------------------------------

    def is_in_transaction(self) -> bool:
        self.ensure_open()
        return self._transactions.is_in_transaction(self)

    def begin(self, level: IsolationLevelLike = None) -> "Handle":
        """Start a transaction.

        With ``level``, a handle already in a transaction must be running at
        that level; otherwise the level is applied to the connection first.
        """
        self.ensure_open()
        requested = TransactionIsolationLevel.from_value(level)
        if requested != TransactionIsolationLevel.UNKNOWN:
            if self._transactions.is_in_transaction(self):
                self._check_nested_level(requested)
            else:
                self.set_transaction_isolation(requested)

        start = time.perf_counter()
        self._transactions.begin(self)
        logger.debug(f"Handle [{self}] begin transaction in {_ms_since(start):.2f}ms")
        return self

    def commit(self) -> "Handle":
        """Commit the transaction, then fire the pending after-commit callbacks."""
        self.ensure_open()
        start = time.perf_counter()
        self._transactions.commit(self)
        logger.debug(f"Handle [{self}] commit transaction in {_ms_since(start):.2f}ms")
        for callback in self.get_config(Handles).drain_callbacks():
            callback.after_commit()
        return self

    def rollback(self) -> "Handle":
        """Roll back the transaction, then fire the pending after-rollback callbacks."""
        self.ensure_open()
        start = time.perf_counter()
        self._transactions.rollback(self)
        logger.debug(f"Handle [{self}] rollback transaction in {_ms_since(start):.2f}ms")
        for callback in self.get_config(Handles).drain_callbacks():
            callback.after_rollback()
        return self

    def after_commit(self, action: Callable[[], None]) -> "Handle":
        """Run ``action`` after the next commit, unless the transaction rolls back."""
        return self.add_transaction_callback(on_commit(action))

    def after_rollback(self, action: Callable[[], None]) -> "Handle":
        """Run ``action`` after the next rollback, unless the transaction commits."""
        return self.add_transaction_callback(on_rollback(action))

    def add_transaction_callback(self, callback: TransactionCallback) -> "Handle":
        if not self.is_in_transaction():
            raise TransactionStateError("Handle must be in a transaction to register a transaction callback")
        self.get_config(Handles).add_callback(callback)
        return self

    def savepoint(self, name: str) -> "Handle":
        self.ensure_open()
        self._transactions.savepoint(self, name)
        logger.debug(f"Handle [{self}] savepoint \"{name}\"")
        return self

    def release(self, name: str) -> "Handle":
        self.ensure_open()
        self._transactions.release_savepoint(self, name)
        logger.debug(f"Handle [{self}] release savepoint \"{name}\"")
        return self

    def rollback_to_savepoint(self, name: str) -> "Handle":
        self.ensure_open()
        start = time.perf_counter()
        self._transactions.rollback_to_savepoint(self, name)
        logger.debug(f"Handle [{self}] rollback to savepoint \"{name}\" in {_ms_since(start):.2f}ms")
        return self

    def in_transaction(self, callback: Callable[["Handle"], Any], level: IsolationLevelLike = None) -> Any:
        """Run ``callback(handle)`` in a transaction and return its result.

        Inside an active transaction the callback simply joins it. Otherwise
        the transaction commits when the callback returns and rolls back when
        it raises. With ``level`` the isolation level is applied for the
        duration of the transaction and restored afterwards; a nested call
        asking for a different level fails.
        """
        self.ensure_open()

        if level is None:
            if self._transactions.is_in_transaction(self):
                return callback(self)
            return self._transactions.in_transaction(self, callback)

        requested = TransactionIsolationLevel.from_value(level)
        if self._transactions.is_in_transaction(self):
            self._check_nested_level(requested)
            return callback(self)

        with self._isolation_level_restored(self.get_transaction_isolation_level()):
            self.set_transaction_isolation(requested)
            return self._transactions.in_transaction(self, callback, requested)

    def use_transaction(self, consumer: Callable[["Handle"], None], level: IsolationLevelLike = None) -> None:
        self.in_transaction(consumer, level=level)

    def _check_nested_level(self, requested: TransactionIsolationLevel) -> None:
        if requested == TransactionIsolationLevel.UNKNOWN:
            return
        current = self.get_transaction_isolation_level()
        if current != requested:
            raise TransactionStateError(
                f"Tried to execute nested transaction with isolation level {requested.value}, "
                f"but already running in a transaction with isolation level {current.value}."
            )

    @contextmanager
    def _isolation_level_restored(self, initial: TransactionIsolationLevel) -> Iterator[None]:
        try:
            yield
        except Exception as error:
            try:
                self.set_transaction_isolation(initial)
            except Exception as restore_error:
                add_suppressed(error, restore_error)
            raise
        else:
            self.set_transaction_isolation(initial)

    # -- connection state --------------------------------------------------

    def get_transaction_isolation_level(self) -> TransactionIsolationLevel:
        self.ensure_open()
        try:
            return TransactionIsolationLevel.from_value(self._connection.get_isolation_level())
        except ConnectionResourceError as e:
            raise ConnectionManipulationError(f"Unable to access current isolation level: {e}") from e

    def set_transaction_isolation(self, level: IsolationLevelLike) -> None:
        """Apply ``level`` to the connection; no round-trip when it already matches."""
        self.ensure_open()
        requested = TransactionIsolationLevel.from_value(level)
        if requested == TransactionIsolationLevel.UNKNOWN:
            return
        try:
            current = TransactionIsolationLevel.from_value(self._connection.get_isolation_level())
            if current != requested:
                self._connection.set_isolation_level(requested.value)
        except ConnectionResourceError as e:
            raise ConnectionManipulationError(
                f"Unable to set isolation level to {requested.value}: {e}",
                isolation_level=requested.value,
            ) from e

    def is_read_only(self) -> bool:
        self.ensure_open()
        try:
            return self._connection.is_read_only()
        except ConnectionResourceError as e:
            raise ConnectionManipulationError(f"Could not get read-only state: {e}") from e

    def set_read_only(self, read_only: bool) -> "Handle":
        """Hint the database that this session only reads. Not allowed inside a transaction."""
        self.ensure_open()
        try:
            self._connection.set_read_only(read_only)
        except ConnectionResourceError as e:
            raise ConnectionManipulationError(f"Could not set read-only state: {e}") from e
        return self

    # -- extensions --------------------------------------------------------

    def attach(self, extension_type: type) -> Any:
        """Create an extension of ``extension_type`` backed by this handle.

        The extension is usable only while the handle is open.

        Raises:
            NoSuchExtensionError: If no registered factory accepts the type.
        """
        self.ensure_open()
        extension = self.get_config(Extensions).find_for(extension_type, ConstantHandleSupplier(self))
        if extension is None:
            raise NoSuchExtensionError(extension_type)
        return extension
