"""
Persistent key-value cache with per-entry expiry.

The store never lets a storage problem escape to its caller: failed reads
become cache misses and failed writes become skipped writes. Every such
failure is logged and passed to the optional ``on_error`` reporter so it can
be observed.
"""
import time
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from .core import CacheEntry
from .storage import StorageMedium, MemoryStorage

logger = logging.getLogger("cache.store")

# (operation, key, exception)
ErrorReporter = Callable[[str, str, Exception], None]

DEFAULT_NAMESPACE = "bocache"


class CacheStore:
    """
    Key-value store with TTL expiry on top of a string storage medium.

    Keys are namespaced inside the medium so a shared medium can hold
    unrelated data that ``clear()`` will never touch.
    """

    def __init__(
        self,
        medium: Optional[StorageMedium] = None,
        namespace: str = DEFAULT_NAMESPACE,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        on_error: Optional[ErrorReporter] = None,
    ):
        """
        Args:
            medium: Where entries are persisted (defaults to in-memory)
            namespace: Prefix separating this store's keys inside the medium
            max_entries: Upper bound on stored entries, None for unbounded
            clock: Returns the current time in epoch seconds
            on_error: Called with (operation, key, exception) on storage failures
        """
        self._medium = medium if medium is not None else MemoryStorage()
        self._prefix = f"{namespace}:"
        self._max_entries = max_entries
        self._clock = clock
        self._on_error = on_error
        self._lock = threading.RLock()
        self._last_access: Dict[str, float] = {}
        self._stats = {"hits": 0, "misses": 0}

    # ----- internals -----

    def _storage_key(self, key: str) -> str:
        return self._prefix + key

    def _report(self, operation: str, key: str, error: Exception) -> None:
        logger.warning(f"Cache {operation} failed for '{key}': {error}")
        if self._on_error is None:
            return
        try:
            self._on_error(operation, key, error)
        except Exception as e:
            logger.error(f"Cache error reporter raised: {e}")

    def _read_entry(self, key: str) -> Optional[CacheEntry]:
        """Read and decode an entry without any expiry handling."""
        try:
            raw = self._medium.get_item(self._storage_key(key))
        except Exception as e:
            self._report("read", key, e)
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.deserialize(raw)
        except ValueError as e:
            self._report("decode", key, e)
            self._delete(key)
            return None

    def _delete(self, key: str) -> bool:
        try:
            self._medium.remove_item(self._storage_key(key))
        except Exception as e:
            self._report("remove", key, e)
            return False
        self._last_access.pop(key, None)
        return True

    def _caller_keys(self) -> List[str]:
        try:
            stored = self._medium.keys()
        except Exception as e:
            self._report("list", "*", e)
            return []
        return [k[len(self._prefix):] for k in stored if k.startswith(self._prefix)]

    def _entries(self) -> List[Tuple[CacheEntry, int]]:
        """All decodable entries with their serialized size, read-only."""
        result = []
        for key in self._caller_keys():
            try:
                raw = self._medium.get_item(self._storage_key(key))
                if raw is None:
                    continue
                result.append((CacheEntry.deserialize(raw), len(raw.encode("utf-8"))))
            except Exception as e:
                self._report("read", key, e)
        return result

    def _enforce_limit(self, keep: str) -> None:
        if self._max_entries is None:
            return
        keys = self._caller_keys()
        if len(keys) <= self._max_entries:
            return

        self.cleanup_expired()
        now = self._clock()
        live = [
            (self._last_access.get(entry.key, entry.stored_at), entry.key)
            for entry, _ in self._entries()
            if entry.is_fresh(now) and entry.key != keep
        ]
        excess = len(live) + 1 - self._max_entries
        if excess <= 0:
            return
        live.sort()
        for _, key in live[:excess]:
            self._delete(key)
        logger.info(f"Evicted {excess} least recently used cache entries")

    # ----- public API -----

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value if present and fresh, otherwise None.

        Expired entries are deleted as a side effect.
        """
        with self._lock:
            entry = self._read_entry(key)
            if entry is None:
                self._stats["misses"] += 1
                return None

            now = self._clock()
            if entry.is_expired(now):
                logger.debug(f"CACHE EXPIRED: {key} [age={entry.age(now):.1f}s]")
                self._delete(key)
                self._stats["misses"] += 1
                return None

            self._last_access[key] = now
            self._stats["hits"] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """
        Store a value, replacing any previous entry for the key.

        Returns:
            False if the write was skipped because of a serialization or
            storage failure
        """
        with self._lock:
            now = self._clock()
            entry = CacheEntry(key=key, value=value, stored_at=now, ttl=ttl)
            try:
                raw = entry.serialize()
            except (TypeError, ValueError) as e:
                self._report("serialize", key, e)
                return False
            try:
                self._medium.set_item(self._storage_key(key), raw)
            except Exception as e:
                self._report("write", key, e)
                return False

            self._last_access[key] = now
            self._enforce_limit(keep=key)
            return True

    def remove(self, key: str) -> bool:
        """Delete an entry. Returns True if one was present."""
        with self._lock:
            try:
                exists = self._medium.get_item(self._storage_key(key)) is not None
            except Exception as e:
                self._report("read", key, e)
                exists = False
            self._delete(key)
            return exists

    def clear(self, pattern: Optional[str] = None) -> int:
        """
        Delete all entries whose key contains ``pattern``, or every entry.

        Returns:
            Number of entries deleted
        """
        with self._lock:
            keys = [k for k in self._caller_keys() if pattern is None or pattern in k]
            removed = sum(1 for key in keys if self._delete(key))
            if pattern is None:
                self._last_access.clear()
            if removed:
                logger.info(
                    f"Cleared {removed} cache entries"
                    + (f" matching '{pattern}'" if pattern is not None else "")
                )
            return removed

    def should_refresh(self, key: str, interval: float) -> bool:
        """
        True if the key has no live entry or its entry is at least
        ``interval`` seconds old. The entry's own TTL is not consulted beyond
        deciding whether the entry exists.
        """
        with self._lock:
            entry = self._read_entry(key)
            if entry is None:
                return True
            now = self._clock()
            if entry.is_expired(now):
                return True
            return now - entry.stored_at >= interval

    def cleanup_expired(self) -> int:
        """Delete every expired entry. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [entry.key for entry, _ in self._entries() if entry.is_expired(now)]
            for key in expired:
                self._delete(key)
            if expired:
                logger.info(f"Pruned {len(expired)} expired cache entries")
            return len(expired)

    def keys(self) -> List[str]:
        """Keys of all live entries."""
        with self._lock:
            now = self._clock()
            return [entry.key for entry, _ in self._entries() if entry.is_fresh(now)]

    def describe(self) -> List[Dict[str, Any]]:
        """Per-entry details, most recently used first."""
        with self._lock:
            now = self._clock()
            rows = []
            for entry, size in self._entries():
                rows.append({
                    "key": entry.key,
                    "stored_at": entry.stored_at,
                    "expires_at": entry.expires_at,
                    "age": round(entry.age(now), 1),
                    "size": size,
                    "is_expired": entry.is_expired(now),
                    "last_accessed": self._last_access.get(entry.key, entry.stored_at),
                })
            rows.sort(key=lambda row: row["last_accessed"], reverse=True)
            return rows

    def get_stats(self) -> Dict[str, Any]:
        """Diagnostic summary. Does not modify any entry."""
        with self._lock:
            now = self._clock()
            entries = self._entries()
            live = [entry for entry, _ in entries if entry.is_fresh(now)]
            ages = [entry.age(now) for entry, _ in entries]
            total_requests = self._stats["hits"] + self._stats["misses"]
            hit_rate = (self._stats["hits"] / total_requests * 100) if total_requests else 0

            return {
                "entry_count": len(live),
                "expired_count": len(entries) - len(live),
                "total_size_estimate": sum(size for _, size in entries),
                "oldest_entry_age": round(max(ages), 1) if ages else None,
                "newest_entry_age": round(min(ages), 1) if ages else None,
                "hits": self._stats["hits"],
                "misses": self._stats["misses"],
                "hit_rate_percent": round(hit_rate, 1),
                "max_entries": self._max_entries,
            }
