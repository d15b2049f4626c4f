import threading
from functools import lru_cache
from typing import Any, Callable, Dict, Type, TypeVar

from flask import current_app

from marketplace.core.config import Config

T = TypeVar('T')


class DependencyContainer:
    """
    Per-application registry of shared services, keyed by class.

    Singletons are stored as given. Factories run once, on first lookup,
    and their result is kept; a factory may look up other services.
    """

    def __init__(self):
        self._instances: Dict[type, Any] = {}
        self._factories: Dict[type, Callable[[], Any]] = {}
        self._lock = threading.RLock()

    def register_singleton(self, service_class: Type[T], instance: T) -> None:
        self._instances[service_class] = instance

    def register_factory(self, service_class: Type[T], factory: Callable[[], T]) -> None:
        self._factories[service_class] = factory
        self._instances.pop(service_class, None)

    def get(self, service_class: Type[T]) -> T:
        instance = self._instances.get(service_class)
        if instance is not None:
            return instance

        with self._lock:
            # Built by another request thread while we waited
            if service_class not in self._instances:
                factory = self._factories.get(service_class)
                if factory is None:
                    raise LookupError(f"Service {service_class.__name__} not registered")
                self._instances[service_class] = factory()
            return self._instances[service_class]


@lru_cache()
def get_config() -> Config:
    """Application configuration from the environment, validated once"""
    config = Config()
    config.validate()
    return config


def get_container() -> DependencyContainer:
    return current_app.extensions["container"]


def resolve(service_class: Type[T]) -> T:
    """Service lookup inside a request"""
    return get_container().get(service_class)
