"""Handle extensions: capability objects backed by a handle."""

from sqlhandle.extension.registry import (
    ConstantHandleSupplier,
    ExtensionFactory,
    ExtensionMethod,
    ExtensionProxy,
    Extensions,
    HandleExtension,
    HandleExtensionFactory,
    HandleSupplier,
    SimpleExtensionFactory,
)
from sqlhandle.extension.transactional import Transactional, transaction

__all__ = [
    "ConstantHandleSupplier",
    "ExtensionFactory",
    "ExtensionMethod",
    "ExtensionProxy",
    "Extensions",
    "HandleExtension",
    "HandleExtensionFactory",
    "HandleSupplier",
    "SimpleExtensionFactory",
    "Transactional",
    "transaction",
]
