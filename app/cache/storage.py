"""
Key-value storage media for the cache store.

A medium maps string keys to string values and knows nothing about expiry.
Media are allowed to raise; CacheStore is responsible for degrading failures
into cache misses.
"""
import sqlite3
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger("cache.storage")


SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_items (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class StorageMedium(ABC):
    """Minimal string key-value persistence API."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string, or None if absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a string, replacing any previous value."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All keys currently held by the medium."""


class MemoryStorage(StorageMedium):
    """Process-local medium. Contents are lost when the process exits."""

    def __init__(self):
        self._items: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())


class SQLiteStorage(StorageMedium):
    """
    Durable file-backed medium.

    Survives process restarts; cleared only by deleting the database file or
    through the store. Each write is a single-row upsert, so per-key writes
    are atomic.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        """Initialize database with schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()
        logger.debug(f"Cache storage ready at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        conn = sqlite3.connect(str(self.db_path), timeout=10)
        try:
            yield conn
        finally:
            conn.close()

    def get_item(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM cache_items WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock, self._get_connection() as conn:
            conn.execute(
                "INSERT INTO cache_items (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()

    def remove_item(self, key: str) -> None:
        with self._lock, self._get_connection() as conn:
            conn.execute("DELETE FROM cache_items WHERE key = ?", (key,))
            conn.commit()

    def keys(self) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT key FROM cache_items").fetchall()
        return [row[0] for row in rows]
