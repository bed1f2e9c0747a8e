"""Transaction handling strategies for handles."""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional, TypeVar, Union

from sqlhandle.exceptions import (
    ConnectionResourceError,
    TransactionError,
    TransactionStateError,
    add_suppressed,
)

if TYPE_CHECKING:
    from sqlhandle.db.handle import Handle

logger = logging.getLogger(__name__)

R = TypeVar("R")
HandleCallback = Callable[["Handle"], R]

SERIALIZATION_FAILURE = "40001"


class TransactionIsolationLevel(str, Enum):
    """Transaction isolation levels.

    Values match the names SQLAlchemy uses for its ``isolation_level``
    execution option. ``UNKNOWN`` means "unspecified": it is never applied
    to a connection and never conflicts with an active level.
    """
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_value(cls, value: Union[str, "TransactionIsolationLevel", None]) -> "TransactionIsolationLevel":
        """Map a driver or user supplied level name onto a member, UNKNOWN if unrecognized."""
        if value is None:
            return cls.UNKNOWN
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper().replace('_', ' ')
        for level in cls:
            if level.value == normalized:
                return level
        return cls.UNKNOWN


class TransactionHandler(ABC):
    """Strategy deciding how a handle's transactions begin and end.

    A handle calls ``specialize`` once at construction and uses the returned
    handler for its whole lifetime.
    """

    def specialize(self, handle: "Handle") -> "TransactionHandler":
        return self

    @abstractmethod
    def is_in_transaction(self, handle: "Handle") -> bool:
        """Whether the handle's connection currently has a transaction open."""

    @abstractmethod
    def begin(self, handle: "Handle") -> None:
        """Start a transaction."""

    @abstractmethod
    def commit(self, handle: "Handle") -> None:
        """Commit the open transaction."""

    @abstractmethod
    def rollback(self, handle: "Handle") -> None:
        """Roll back the open transaction."""

    @abstractmethod
    def savepoint(self, handle: "Handle", name: str) -> None:
        """Create a named savepoint inside the open transaction."""

    @abstractmethod
    def rollback_to_savepoint(self, handle: "Handle", name: str) -> None:
        """Roll back to a savepoint created earlier in this transaction."""

    @abstractmethod
    def release_savepoint(self, handle: "Handle", name: str) -> None:
        """Release a savepoint created earlier in this transaction."""

    @abstractmethod
    def in_transaction(
        self,
        handle: "Handle",
        callback: HandleCallback,
        level: Optional[TransactionIsolationLevel] = None,
    ) -> Any:
        """Run ``callback`` inside a transaction, committing on success.

        The transaction is rolled back if the callback raises, and the
        exception propagates.
        """


class LocalTransactionHandler(TransactionHandler):
    """Transactions controlled directly on the handle's own connection.

    ``specialize`` returns a bound copy that tracks the savepoints of the
    handle it was created for.
    """

    def __init__(self) -> None:
        self._savepoints: List[str] = []

    def specialize(self, handle: "Handle") -> "LocalTransactionHandler":
        return LocalTransactionHandler()

    @property
    def savepoints(self) -> List[str]:
        """Names of the savepoints valid in the current transaction, oldest first."""
        return list(self._savepoints)

    def is_in_transaction(self, handle: "Handle") -> bool:
        try:
            return handle.connection.in_transaction()
        except ConnectionResourceError as e:
            raise TransactionError(f"Failed to test for transaction status: {e}") from e

    def begin(self, handle: "Handle") -> None:
        if self.is_in_transaction(handle):
            logger.debug("Transaction already open, begin is a no-op")
            return

        try:
            handle.connection.begin()
        except ConnectionResourceError as e:
            raise TransactionError(f"Failed to start transaction: {e}") from e
        self._savepoints.clear()

    def commit(self, handle: "Handle") -> None:
        self._require_transaction(handle, "commit")
        try:
            handle.connection.commit()
        except ConnectionResourceError as e:
            raise TransactionError(f"Failed to commit transaction: {e}") from e
        finally:
            self._reset()

    def rollback(self, handle: "Handle") -> None:
        self._require_transaction(handle, "rollback")
        try:
            handle.connection.rollback()
        except ConnectionResourceError as e:
            raise TransactionError(f"Failed to rollback transaction: {e}") from e
        finally:
            self._reset()

    def savepoint(self, handle: "Handle", name: str) -> None:
        self._require_transaction(handle, "create savepoint")
        try:
            handle.connection.savepoint(name)
        except ConnectionResourceError as e:
            raise TransactionError(f"Unable to create savepoint '{name}': {e}") from e
        self._savepoints.append(name)

    def rollback_to_savepoint(self, handle: "Handle", name: str) -> None:
        index = self._find_savepoint(handle, name)
        try:
            handle.connection.rollback_to_savepoint(name)
        except ConnectionResourceError as e:
            raise TransactionError(f"Unable to rollback to savepoint '{name}': {e}") from e
        # The savepoint itself survives a rollback to it.
        del self._savepoints[index + 1:]

    def release_savepoint(self, handle: "Handle", name: str) -> None:
        index = self._find_savepoint(handle, name)
        try:
            handle.connection.release_savepoint(name)
        except ConnectionResourceError as e:
            raise TransactionError(f"Unable to release savepoint '{name}': {e}") from e
        del self._savepoints[index:]

    def in_transaction(
        self,
        handle: "Handle",
        callback: HandleCallback,
        level: Optional[TransactionIsolationLevel] = None,
    ) -> Any:
        did_begin = not self.is_in_transaction(handle)
        if did_begin:
            handle.begin()

        try:
            result = callback(handle)
        except Exception as error:
            if did_begin and self.is_in_transaction(handle):
                try:
                    handle.rollback()
                except Exception as rollback_error:
                    logger.error(f"Rollback after failed transaction callback also failed: {rollback_error}")
                    add_suppressed(error, rollback_error)
            raise

        # The callback may already have committed or rolled back explicitly.
        if did_begin and self.is_in_transaction(handle):
            handle.commit()
        return result

    def _require_transaction(self, handle: "Handle", operation: str) -> None:
        if not self.is_in_transaction(handle):
            raise TransactionStateError(f"Cannot {operation}: no transaction is open")

    def _find_savepoint(self, handle: "Handle", name: str) -> int:
        self._require_transaction(handle, f"use savepoint '{name}'")
        for index in range(len(self._savepoints) - 1, -1, -1):
            if self._savepoints[index] == name:
                return index
        raise TransactionStateError(
            f"Savepoint '{name}' does not exist in the current transaction",
            details={'savepoints': list(self._savepoints)},
        )

    def _reset(self) -> None:
        self._savepoints.clear()


def find_sqlstate(error: BaseException, sqlstate: str) -> bool:
    """Whether ``error`` or anything in its cause chain carries ``sqlstate``."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        candidates = [current, getattr(current, 'orig', None)]
        for candidate in candidates:
            if candidate is None:
                continue
            code = getattr(candidate, 'sqlstate', None) or getattr(candidate, 'pgcode', None)
            if code == sqlstate:
                return True
        current = current.__cause__ or current.__context__
    return False


class SerializableTransactionRunner(TransactionHandler):
    """Retries transactions that fail with a serialization failure.

    Every operation delegates to ``delegate``; ``in_transaction`` re-runs the
    whole callback up to ``max_retries`` more times when the failure carries
    SQLSTATE 40001. When the retries run out, the last failure is raised with
    the earlier ones attached as suppressed.
    """

    def __init__(
        self,
        delegate: Optional[TransactionHandler] = None,
        max_retries: int = 5,
        on_failure: Optional[Callable[[List[Exception]], None]] = None,
        on_success: Optional[Callable[[List[Exception]], None]] = None,
        sqlstate: str = SERIALIZATION_FAILURE,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.delegate = delegate or LocalTransactionHandler()
        self.max_retries = max_retries
        self.on_failure = on_failure
        self.on_success = on_success
        self.sqlstate = sqlstate

    def specialize(self, handle: "Handle") -> "SerializableTransactionRunner":
        return SerializableTransactionRunner(
            delegate=self.delegate.specialize(handle),
            max_retries=self.max_retries,
            on_failure=self.on_failure,
            on_success=self.on_success,
            sqlstate=self.sqlstate,
        )

    def in_transaction(
        self,
        handle: "Handle",
        callback: HandleCallback,
        level: Optional[TransactionIsolationLevel] = None,
    ) -> Any:
        attempts = 1 + self.max_retries
        failures: List[Exception] = []

        while True:
            try:
                result = self.delegate.in_transaction(handle, callback, level)
            except Exception as error:
                if not find_sqlstate(error, self.sqlstate):
                    raise

                failures.append(error)
                attempts -= 1
                if attempts <= 0:
                    failures.pop()
                    for earlier in failures:
                        add_suppressed(error, earlier)
                    logger.warning(f"Giving up after {len(failures) + 1} serialization failures")
                    raise

                logger.debug(f"Serialization failure, retrying transaction ({attempts} attempts left)")
                if self.on_failure is not None:
                    self.on_failure(list(failures))
                continue

            if self.on_success is not None:
                self.on_success(list(failures))
            return result

    def is_in_transaction(self, handle: "Handle") -> bool:
        return self.delegate.is_in_transaction(handle)

    def begin(self, handle: "Handle") -> None:
        self.delegate.begin(handle)

    def commit(self, handle: "Handle") -> None:
        self.delegate.commit(handle)

    def rollback(self, handle: "Handle") -> None:
        self.delegate.rollback(handle)

    def savepoint(self, handle: "Handle", name: str) -> None:
        self.delegate.savepoint(handle, name)

    def rollback_to_savepoint(self, handle: "Handle", name: str) -> None:
        self.delegate.rollback_to_savepoint(handle, name)

    def release_savepoint(self, handle: "Handle", name: str) -> None:
        self.delegate.release_savepoint(handle, name)
