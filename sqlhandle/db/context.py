"""Per-thread value slots used by handles."""

import threading
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class ThreadScoped(Generic[T]):
    """A value slot with an independent value per thread.

    Threads that never called ``set`` see the value produced by
    ``initial_factory``; ``remove`` returns the calling thread's slot to
    that unset state.
    """

    def __init__(self, initial_factory: Optional[Callable[[], T]] = None) -> None:
        self._initial_factory = initial_factory
        self._local = threading.local()

    def get(self) -> Optional[T]:
        try:
            return self._local.value
        except AttributeError:
            value = self._initial_factory() if self._initial_factory else None
            self._local.value = value
            return value

    def set(self, value: T) -> None:
        self._local.value = value

    def remove(self) -> None:
        try:
            del self._local.value
        except AttributeError:
            pass

    def is_set(self) -> bool:
        """Whether the calling thread holds a value (set or fabricated)."""
        return hasattr(self._local, "value")
