"""
Back-office resource cache: TTL store, single-flight fetching and resource sync.
"""
from .core import CacheEntry
from .storage import StorageMedium, MemoryStorage, SQLiteStorage
from .store import CacheStore, ErrorReporter
from .ttl_policies import (
    TTL_CONFIG,
    DAILY_REFRESH_INTERVAL,
    ResourceType,
    cache_key_for,
    get_ttl_for_resource,
)
from .coalescer import RequestCoalescer
from .manager import (
    CacheManager,
    build_cache_manager,
    configure_cache_manager,
    get_cache_manager,
    reset_cache_manager,
)
from .sync import ResourceSync, SyncState
from .admin import CacheAdmin

__all__ = [
    # Core types
    "CacheEntry",
    # Storage
    "StorageMedium",
    "MemoryStorage",
    "SQLiteStorage",
    "CacheStore",
    "ErrorReporter",
    # TTL policies
    "TTL_CONFIG",
    "DAILY_REFRESH_INTERVAL",
    "ResourceType",
    "cache_key_for",
    "get_ttl_for_resource",
    # Coalescing
    "RequestCoalescer",
    # Manager
    "CacheManager",
    "build_cache_manager",
    "configure_cache_manager",
    "get_cache_manager",
    "reset_cache_manager",
    # Sync
    "ResourceSync",
    "SyncState",
    "CacheAdmin",
]
