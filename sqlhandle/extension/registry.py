"""Extension registry: resolving capability types to handle-backed objects."""

import functools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional

from sqlhandle.config.registry import ConfigBase

if TYPE_CHECKING:
    from sqlhandle.config.registry import ConfigRegistry
    from sqlhandle.db.handle import Handle

logger = logging.getLogger(__name__)

TRANSACTION_ATTRIBUTE = "__sqlhandle_transaction__"


@dataclass(frozen=True)
class ExtensionMethod:
    """Identifies the extension method currently running on a handle."""
    extension_type: type
    method_name: str

    def __str__(self) -> str:
        return f"{getattr(self.extension_type, '__qualname__', self.extension_type)}.{self.method_name}"


class HandleSupplier(ABC):
    """Provides the handle an extension runs against."""

    @abstractmethod
    def get_handle(self) -> "Handle": ...

    def get_config(self) -> "ConfigRegistry":
        return self.get_handle().get_config()


class ConstantHandleSupplier(HandleSupplier):
    """Always returns the same handle."""

    def __init__(self, handle: "Handle") -> None:
        self._handle = handle

    def get_handle(self) -> "Handle":
        return self._handle


class HandleExtension:
    """Base class for extensions constructed directly from a handle."""

    def __init__(self, handle: "Handle") -> None:
        self.handle = handle


class ExtensionFactory(ABC):
    """Creates extension objects for the types it accepts."""

    @abstractmethod
    def accepts(self, extension_type: type) -> bool: ...

    @abstractmethod
    def attach(self, extension_type: type, handle_supplier: HandleSupplier) -> Any: ...


class SimpleExtensionFactory(ExtensionFactory):
    """Maps exactly one type to a constructor taking the backing handle."""

    def __init__(self, extension_type: type, constructor: Optional[Callable[["Handle"], Any]] = None) -> None:
        self.extension_type = extension_type
        self.constructor = constructor or extension_type

    def accepts(self, extension_type: type) -> bool:
        return extension_type is self.extension_type

    def attach(self, extension_type: type, handle_supplier: HandleSupplier) -> Any:
        return self.constructor(handle_supplier.get_handle())


class HandleExtensionFactory(ExtensionFactory):
    """Accepts any ``HandleExtension`` subclass, built with the handle."""

    def accepts(self, extension_type: type) -> bool:
        return isinstance(extension_type, type) and issubclass(extension_type, HandleExtension)

    def attach(self, extension_type: type, handle_supplier: HandleSupplier) -> Any:
        return extension_type(handle_supplier.get_handle())


class ExtensionProxy:
    """Routes calls to an extension object through its backing handle.

    Each public method call checks the handle is open, publishes the
    ``ExtensionMethod`` on the handle for the calling thread while it runs,
    and wraps ``@transaction`` methods in ``handle.in_transaction``.
    """

    def __init__(self, extension_type: type, target: Any, handle_supplier: HandleSupplier) -> None:
        self._extension_type = extension_type
        self._target = target
        self._handle_supplier = handle_supplier

    @property
    def extension_type(self) -> type:
        return self._extension_type

    def __getattr__(self, name: str) -> Any:
        if name in ('_target', '_extension_type', '_handle_supplier'):
            raise AttributeError(name)
        attribute = getattr(self._target, name)
        if name.startswith('_') or not callable(attribute):
            return attribute
        return self._wrap(name, attribute)

    def _wrap(self, name: str, method: Callable[..., Any]) -> Callable[..., Any]:
        extension_method = ExtensionMethod(self._extension_type, name)

        @functools.wraps(method)
        def invoke(*args, **kwargs):
            handle = self._handle_supplier.get_handle()
            handle.ensure_open()

            previous = handle.get_extension_method()
            handle.set_extension_method(extension_method)
            try:
                if hasattr(method, TRANSACTION_ATTRIBUTE):
                    level = getattr(method, TRANSACTION_ATTRIBUTE)
                    result = handle.in_transaction(lambda _: method(*args, **kwargs), level=level)
                else:
                    result = method(*args, **kwargs)
            finally:
                if not handle.is_closed():
                    handle.set_extension_method(previous)

            # Fluent methods keep callers on the proxy
            if result is self._target:
                return self
            return result

        return invoke

    def __repr__(self) -> str:
        return f"<ExtensionProxy {self._extension_type.__qualname__} -> {self._target!r}>"


class Extensions(ConfigBase):
    """Registry of extension factories, consulted most recently registered first."""

    def __init__(self, factories: Optional[Iterable[ExtensionFactory]] = None) -> None:
        if factories is None:
            factories = [HandleExtensionFactory()]
        self._factories: List[ExtensionFactory] = list(factories)

    def register(self, factory: ExtensionFactory) -> "Extensions":
        self._factories.insert(0, factory)
        return self

    def register_type(
        self,
        extension_type: type,
        constructor: Optional[Callable[["Handle"], Any]] = None,
    ) -> "Extensions":
        return self.register(SimpleExtensionFactory(extension_type, constructor))

    def has_extension_for(self, extension_type: type) -> bool:
        return any(factory.accepts(extension_type) for factory in self._factories)

    def find_for(self, extension_type: type, handle_supplier: HandleSupplier) -> Optional[ExtensionProxy]:
        """Build an extension of ``extension_type``, or None when no factory accepts it."""
        for factory in self._factories:
            if factory.accepts(extension_type):
                target = factory.attach(extension_type, handle_supplier)
                logger.debug(f"Attached {extension_type.__qualname__} via {type(factory).__name__}")
                return ExtensionProxy(extension_type, target, handle_supplier)
        return None

    def create_copy(self) -> "Extensions":
        return Extensions(self._factories)
