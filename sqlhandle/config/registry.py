"""Typed, hierarchically inheritable runtime configuration."""

import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Dict, Optional, Type, TypeVar

T = TypeVar("T", bound="ConfigBase")


class ConfigBase(ABC):
    """A piece of runtime configuration stored in a ``ConfigRegistry``.

    Subclasses must be constructible without arguments so the registry can
    fabricate a default, and must implement ``create_copy`` so child
    registries get an independent instance.
    """

    def set_registry(self, registry: "ConfigRegistry") -> None:
        """Called once the config is stored in ``registry``."""
        pass

    @abstractmethod
    def create_copy(self) -> "ConfigBase":
        """Return an independent copy for a child registry."""


class ConfigRegistry:
    """Ordered mapping from config class to config instance.

    ``get`` fabricates a default instance the first time a class is
    requested. ``create_copy`` builds a child registry holding copies of
    every entry, so changes made in the child never leak into the parent.
    """

    def __init__(self, parent: Optional["ConfigRegistry"] = None) -> None:
        self._lock = threading.RLock()
        self._configs: Dict[Type[ConfigBase], ConfigBase] = OrderedDict()

        if parent is not None:
            with parent._lock:
                inherited = list(parent._configs.items())
            for config_cls, config in inherited:
                self._store(config_cls, config.create_copy())

    def get(self, config_cls: Type[T]) -> T:
        """Return the config of type ``config_cls``, creating a default if absent."""
        config = self._configs.get(config_cls)
        if config is not None:
            return config

        with self._lock:
            config = self._configs.get(config_cls)
            if config is None:
                config = self._store(config_cls, config_cls())
        return config

    def _store(self, config_cls: Type[ConfigBase], config: ConfigBase) -> ConfigBase:
        self._configs[config_cls] = config
        config.set_registry(self)
        return config

    def __contains__(self, config_cls: Type[ConfigBase]) -> bool:
        return config_cls in self._configs

    def create_copy(self) -> "ConfigRegistry":
        return ConfigRegistry(self)


class Configurable:
    """Mixin for objects that expose a ``ConfigRegistry``."""

    def _current_config(self) -> ConfigRegistry:
        raise NotImplementedError

    def get_config(self, config_cls=None):
        """Return the registry, or the ``config_cls`` entry of it when given."""
        registry = self._current_config()
        if config_cls is None:
            return registry
        return registry.get(config_cls)

    def configure(self, config_cls: Type[T], configurer: Callable[[T], None]):
        """Apply ``configurer`` to this object's ``config_cls`` instance and return self."""
        configurer(self.get_config(config_cls))
        return self
