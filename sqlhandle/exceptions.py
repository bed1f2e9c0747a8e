"""Core exceptions for SQLHandle."""

from typing import Any, Dict, List, Optional


class SQLHandleError(Exception):
    """Base exception for all SQLHandle errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suppressed: List[BaseException] = []

    def add_suppressed(self, error: BaseException) -> None:
        """Record a secondary failure raised while handling this one."""
        self.suppressed.append(error)


def add_suppressed(error: BaseException, secondary: BaseException) -> None:
    """Attach ``secondary`` to ``error`` without replacing it.

    SQLHandle errors keep an ordered ``suppressed`` list; any other exception
    gets a note so the secondary failure still shows up in the traceback.
    """
    if isinstance(error, SQLHandleError):
        error.add_suppressed(secondary)
    else:
        error.add_note(f"suppressed: {type(secondary).__name__}: {secondary}")


class ConfigurationError(SQLHandleError):
    """Raised when there's an error in configuration parsing or validation."""
    pass


class DatabaseError(SQLHandleError):
    """Raised when there's an error connecting to or querying a database."""

    def __init__(
        self,
        message: str,
        database_type: Optional[str] = None,
        sql: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.database_type = database_type
        self.sql = sql


class ConnectionResourceError(DatabaseError):
    """Raised by a connection resource when the underlying connection fails."""
    pass


class HandleClosedError(SQLHandleError):
    """Raised when an operation is attempted on a closed handle."""
    pass


class TransactionError(SQLHandleError):
    """Raised when a transaction operation is rejected by the connection."""
    pass


class TransactionStateError(TransactionError):
    """Raised when a transaction operation is invalid in the current state.

    Covers nested isolation level mismatches, operations that need an open
    transaction when there is none, and unknown savepoint names.
    """
    pass


class TransactionLeakError(TransactionError):
    """Raised by ``Handle.close()`` after rolling back a transaction left open."""
    pass


class ConnectionManipulationError(TransactionError):
    """Raised when isolation level or read-only state cannot be read or changed."""

    def __init__(
        self,
        message: str,
        isolation_level: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.isolation_level = isolation_level


class CloseError(SQLHandleError):
    """Raised when one or more resources failed to release while closing a handle.

    ``cause`` is the primary failure; ``suppressed`` holds every other
    recorded failure in the order it happened.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException,
        suppressed: Optional[List[BaseException]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.cause = cause
        self.__cause__ = cause
        for error in suppressed or []:
            self.add_suppressed(error)


class NoSuchExtensionError(SQLHandleError):
    """Raised when no registered extension factory supports a requested type."""

    def __init__(self, extension_type: type, details: Optional[Dict[str, Any]] = None):
        name = getattr(extension_type, '__qualname__', repr(extension_type))
        super().__init__(f"Extension not found: {name}", details)
        self.extension_type = extension_type
