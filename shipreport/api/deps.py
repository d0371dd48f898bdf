"""
API dependencies for dependency injection.
"""

from typing import Optional

from shipreport.core.config import settings
from shipreport.repositories.cache_repo import InMemoryResponseCache
from shipreport.services.status_service import StatusService


class ServiceContainer:
    """
    Container for all application services.
    Provides singleton instances of services.
    """

    _instance: Optional["ServiceContainer"] = None

    def __init__(self) -> None:
        self._initialized = False

    @classmethod
    def get_instance(cls) -> "ServiceContainer":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def initialize(self) -> None:
        """Initialize all services."""
        if self._initialized:
            return

        self._cache = InMemoryResponseCache(
            default_ttl_seconds=settings.cache.ttl_seconds,
            sweep_interval_seconds=settings.cache.sweep_interval_seconds,
            bypass=settings.skip_cache,
        )
        self._status_service = StatusService(settings=settings, cache=self._cache)

        self._initialized = True

    @property
    def cache(self) -> InMemoryResponseCache:
        """Get the response cache."""
        self.initialize()
        return self._cache

    @property
    def status_service(self) -> StatusService:
        """Get the status service."""
        self.initialize()
        return self._status_service


# Singleton container instance
container = ServiceContainer.get_instance()


# Dependency functions for FastAPI
def get_status_service() -> StatusService:
    """Get the status service instance."""
    return container.status_service


def get_cache() -> InMemoryResponseCache:
    """Get the response cache instance."""
    return container.cache
