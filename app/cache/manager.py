"""
Process-wide cache facade with per-resource helpers.
"""
import logging
from typing import Any, Dict, List, Optional

from .coalescer import RequestCoalescer
from .storage import MemoryStorage, SQLiteStorage, StorageMedium
from .store import CacheStore
from .ttl_policies import ResourceType, cache_key_for, get_ttl_for_resource

logger = logging.getLogger("cache.manager")


class CacheManager:
    """
    Facade the rest of the application uses instead of the store directly.

    - Delegates get/set/remove/clear/should_refresh/stats to the CacheStore
    - Owns the single-flight coalescer shared by all resource synchronizers
    - Offers typed helpers for the cached back-office resources
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        coalesce_timeout: float = 30.0,
    ):
        """
        Initialize the cache manager.

        Args:
            store: Backing store (defaults to an in-memory store)
            coalesce_timeout: Timeout for waiting on coalesced requests
        """
        self._store = store if store is not None else CacheStore()
        self.coalescer = RequestCoalescer(timeout=coalesce_timeout)

    @property
    def store(self) -> CacheStore:
        return self._store

    def get(self, key: str) -> Optional[Any]:
        return self._store.get(key)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        return self._store.set(key, value, ttl)

    def remove(self, key: str) -> bool:
        removed = self._store.remove(key)
        if removed:
            logger.info(f"Invalidated cache: {key}")
        return removed

    def clear(self, pattern: Optional[str] = None) -> int:
        return self._store.clear(pattern)

    def clear_all(self) -> int:
        """Remove every entry; any later get() returns None."""
        count = self._store.clear()
        logger.info(f"Cleared all cache ({count} entries)")
        return count

    def should_refresh(self, key: str, interval: float) -> bool:
        return self._store.should_refresh(key, interval)

    def cleanup_expired(self) -> int:
        return self._store.cleanup_expired()

    def describe(self) -> List[Dict[str, Any]]:
        return self._store.describe()

    def get_stats(self) -> Dict[str, Any]:
        stats = self._store.get_stats()
        stats["coalescer"] = self.coalescer.get_stats()
        return stats

    # ----- resource helpers -----

    def _set_resource(
        self, resource: ResourceType, data: Any, branch_id: Optional[str] = None
    ) -> bool:
        key = cache_key_for(resource, branch_id)
        return self.set(key, data, get_ttl_for_resource(resource))

    def _get_resource(
        self, resource: ResourceType, branch_id: Optional[str] = None
    ) -> Optional[Any]:
        return self.get(cache_key_for(resource, branch_id))

    def set_branches(self, branches: List[Dict[str, Any]]) -> bool:
        return self._set_resource(ResourceType.BRANCHES, branches)

    def get_branches(self) -> Optional[List[Dict[str, Any]]]:
        return self._get_resource(ResourceType.BRANCHES)

    def set_categories(self, categories: List[Dict[str, Any]]) -> bool:
        return self._set_resource(ResourceType.CATEGORIES, categories)

    def get_categories(self) -> Optional[List[Dict[str, Any]]]:
        return self._get_resource(ResourceType.CATEGORIES)

    def set_employees(self, employees: List[Dict[str, Any]], branch_id: str) -> bool:
        return self._set_resource(ResourceType.EMPLOYEES, employees, branch_id)

    def get_employees(self, branch_id: str) -> Optional[List[Dict[str, Any]]]:
        return self._get_resource(ResourceType.EMPLOYEES, branch_id)

    def set_customers(self, customers: List[Dict[str, Any]], branch_id: str) -> bool:
        return self._set_resource(ResourceType.CUSTOMERS, customers, branch_id)

    def get_customers(self, branch_id: str) -> Optional[List[Dict[str, Any]]]:
        return self._get_resource(ResourceType.CUSTOMERS, branch_id)

    def set_products(self, products: List[Dict[str, Any]], branch_id: str) -> bool:
        return self._set_resource(ResourceType.PRODUCTS, products, branch_id)

    def get_products(self, branch_id: str) -> Optional[List[Dict[str, Any]]]:
        return self._get_resource(ResourceType.PRODUCTS, branch_id)

    def set_user_profile(self, profile: Dict[str, Any]) -> bool:
        return self._set_resource(ResourceType.USER_PROFILE, profile)

    def get_user_profile(self) -> Optional[Dict[str, Any]]:
        return self._get_resource(ResourceType.USER_PROFILE)


def build_cache_manager(settings) -> CacheManager:
    """Create a manager from application settings."""
    medium: StorageMedium
    if settings.cache_storage == "sqlite":
        medium = SQLiteStorage(settings.cache_db_path)
    else:
        medium = MemoryStorage()
    store = CacheStore(
        medium=medium,
        namespace=settings.cache_namespace,
        max_entries=settings.cache_max_entries,
    )
    logger.info(
        f"Cache manager using {settings.cache_storage} storage "
        f"(namespace={settings.cache_namespace}, max_entries={settings.cache_max_entries})"
    )
    return CacheManager(store, coalesce_timeout=settings.coalesce_timeout)


# Global cache manager instance
_cache_manager: Optional[CacheManager] = None


def configure_cache_manager(manager: CacheManager) -> CacheManager:
    """Install the process-wide manager (called once at startup)."""
    global _cache_manager
    _cache_manager = manager
    return manager


def get_cache_manager() -> CacheManager:
    """Get or create the global cache manager."""
    global _cache_manager
    if _cache_manager is None:
        from config.settings import settings
        _cache_manager = build_cache_manager(settings)
    return _cache_manager


def reset_cache_manager() -> None:
    """Drop the global manager so the next call builds a fresh one."""
    global _cache_manager
    _cache_manager = None
