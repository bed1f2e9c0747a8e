"""Handle-level configuration and transaction callbacks."""

import threading
from typing import Callable, List, Optional

from sqlhandle.config.registry import ConfigBase


class TransactionCallback:
    """Hooks fired once after the enclosing transaction ends.

    Override either method; the default implementations do nothing.
    """

    def after_commit(self) -> None:
        pass

    def after_rollback(self) -> None:
        pass


class _FunctionCallback(TransactionCallback):
    def __init__(
        self,
        on_commit: Optional[Callable[[], None]] = None,
        on_rollback: Optional[Callable[[], None]] = None,
    ) -> None:
        self._on_commit = on_commit
        self._on_rollback = on_rollback

    def after_commit(self) -> None:
        if self._on_commit is not None:
            self._on_commit()

    def after_rollback(self) -> None:
        if self._on_rollback is not None:
            self._on_rollback()


def on_commit(action: Callable[[], None]) -> TransactionCallback:
    return _FunctionCallback(on_commit=action)


def on_rollback(action: Callable[[], None]) -> TransactionCallback:
    return _FunctionCallback(on_rollback=action)


class Handles(ConfigBase):
    """Configuration of handle behaviour plus the pending callback queue."""

    def __init__(self, force_end_transactions: bool = True) -> None:
        self.force_end_transactions = force_end_transactions
        self._callbacks: List[TransactionCallback] = []
        self._lock = threading.Lock()

    def add_callback(self, callback: TransactionCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def drain_callbacks(self) -> List[TransactionCallback]:
        """Remove and return every pending callback in registration order."""
        with self._lock:
            drained = self._callbacks
            self._callbacks = []
        return drained

    @property
    def pending_callbacks(self) -> int:
        return len(self._callbacks)

    def create_copy(self) -> "Handles":
        # Pending callbacks belong to one handle's transaction and are never inherited.
        return Handles(force_end_transactions=self.force_end_transactions)
