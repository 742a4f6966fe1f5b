"""
Administrative view over the cache: statistics and bulk invalidation.
"""
import logging
from typing import Any, Dict, List, Optional

from .manager import CacheManager, get_cache_manager

logger = logging.getLogger("cache.admin")


class CacheAdmin:
    """Convenience composition over CacheManager for admin screens and endpoints."""

    def __init__(self, manager: Optional[CacheManager] = None):
        self._manager = manager if manager is not None else get_cache_manager()
        self.stats: Dict[str, Any] = self._manager.get_stats()

    def refresh_stats(self) -> Dict[str, Any]:
        self.stats = self._manager.get_stats()
        return self.stats

    def clear_all_cache(self) -> int:
        count = self._manager.clear_all()
        self.refresh_stats()
        return count

    def clear_cache_by_pattern(self, pattern: str) -> int:
        count = self._manager.clear(pattern)
        logger.info(f"Admin cleared {count} entries matching '{pattern}'")
        self.refresh_stats()
        return count

    def cleanup_expired(self) -> int:
        count = self._manager.cleanup_expired()
        self.refresh_stats()
        return count

    def entries(self) -> List[Dict[str, Any]]:
        return self._manager.describe()
