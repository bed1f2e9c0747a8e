"""Transaction support for extensions."""

from typing import Any, Callable, Optional, TypeVar, Union

from sqlhandle.db.transaction import TransactionIsolationLevel
from sqlhandle.extension.registry import TRANSACTION_ATTRIBUTE, HandleExtension

F = TypeVar("F", bound=Callable[..., Any])


def transaction(
    level: Union[TransactionIsolationLevel, str, None] = None,
) -> Callable[[F], F]:
    """Mark an extension method to run inside ``handle.in_transaction``.

    A nested call joins the active transaction. Passing a level requires the
    active transaction to use the same one.

        class Accounts(HandleExtension):
            @transaction(TransactionIsolationLevel.SERIALIZABLE)
            def transfer(self, source, target, amount): ...
    """
    resolved = TransactionIsolationLevel.from_value(level) if level is not None else None

    def decorator(func: F) -> F:
        setattr(func, TRANSACTION_ATTRIBUTE, resolved)
        return func

    return decorator


class Transactional(HandleExtension):
    """Extension mixin giving direct transaction control over the backing handle."""

    def begin(self) -> "Transactional":
        self.handle.begin()
        return self

    def commit(self) -> "Transactional":
        self.handle.commit()
        return self

    def rollback(self) -> "Transactional":
        self.handle.rollback()
        return self

    def is_in_transaction(self) -> bool:
        return self.handle.is_in_transaction()

    def savepoint(self, name: str) -> "Transactional":
        self.handle.savepoint(name)
        return self

    def release(self, name: str) -> "Transactional":
        self.handle.release(name)
        return self

    def rollback_to_savepoint(self, name: str) -> "Transactional":
        self.handle.rollback_to_savepoint(name)
        return self

    def in_transaction(
        self,
        callback: Callable[["Transactional"], Any],
        level: Optional[TransactionIsolationLevel] = None,
    ) -> Any:
        return self.handle.in_transaction(lambda _: callback(self), level=level)

    def use_transaction(
        self,
        consumer: Callable[["Transactional"], None],
        level: Optional[TransactionIsolationLevel] = None,
    ) -> None:
        self.in_transaction(consumer, level=level)
