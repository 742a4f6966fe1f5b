"""
Resource synchronization: serve a named resource from cache or fetch it.

A ResourceSync is the server-side counterpart of a data hook. It owns the
request lifecycle state for one logical resource and decides between the
cache and the fetcher:

    async with ResourceSync("branches", fetch_branches, ttl=86400) as sync:
        print(sync.state.data, sync.state.is_from_cache)

Lifecycle:
- start(): check the cache, fetch on miss, start the auto-refresh timer
- refresh(): always fetch, ignoring any cached value
- update(): change key/fetcher/enabled and re-run the cache check
- close(): suppress every later state change and callback
"""
import asyncio
import copy
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from .manager import CacheManager, get_cache_manager

logger = logging.getLogger("cache.sync")

T = TypeVar("T")

Fetcher = Callable[[], Awaitable[T]]


@dataclass
class SyncState(Generic[T]):
    """Request lifecycle state owned by one ResourceSync."""
    data: Optional[T] = None
    loading: bool = False
    error: Optional[str] = None
    is_from_cache: bool = False
    last_updated: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "isFromCache": self.is_from_cache,
            "lastUpdated": (
                self.last_updated.isoformat().replace("+00:00", "Z")
                if self.last_updated else None
            ),
            "loading": self.loading,
            "error": self.error,
        }


def _error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


class ResourceSync(Generic[T]):
    """
    Cache-or-fetch state machine for one resource key.

    Concurrent instances with the same key share one in-flight fetch through
    the manager's coalescer unless ``dedupe`` is False.
    """

    def __init__(
        self,
        key: str,
        fetcher: Fetcher,
        *,
        ttl: Optional[float] = None,
        refresh_interval: Optional[float] = None,
        enabled: bool = True,
        on_success: Optional[Callable[[T], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
        fallback_data: Optional[T] = None,
        manager: Optional[CacheManager] = None,
        dedupe: bool = True,
    ):
        """
        Args:
            key: Cache key, stable for the same logical resource
            fetcher: Zero-argument coroutine function returning fresh data
            ttl: Seconds a fetched value stays fresh in the cache
            refresh_interval: Seconds between background refresh checks
            enabled: When False nothing is read or fetched
            on_success: Called with the fetched value
            on_error: Called with the fetch exception
            fallback_data: Value exposed as data when a fetch fails
            manager: Cache manager (defaults to the process-wide one)
            dedupe: Share in-flight fetches with other instances on the same key
        """
        self.key = key
        self.fetcher = fetcher
        self.ttl = ttl
        self.refresh_interval = refresh_interval
        self.enabled = enabled
        self.on_success = on_success
        self.on_error = on_error
        self.fallback_data = fallback_data
        self.dedupe = dedupe
        self._manager = manager
        self.state: SyncState[T] = SyncState()

        self._mounted = False
        self._generation = 0
        self._timer: Optional[asyncio.Task] = None

    @property
    def manager(self) -> CacheManager:
        if self._manager is None:
            self._manager = get_cache_manager()
        return self._manager

    @property
    def mounted(self) -> bool:
        return self._mounted

    # ----- lifecycle -----

    async def start(self, use_cache: bool = True) -> "ResourceSync[T]":
        """
        Mount: load from cache or backend, then start the refresh timer.

        With ``use_cache=False`` the cache read is skipped, as in refresh().
        """
        self._mounted = True
        if use_cache or not self.enabled:
            await self._load()
        else:
            await self._fetch()
        self._restart_timer()
        return self

    async def close(self) -> None:
        """Unmount. In-flight fetches keep running but their results are ignored."""
        self._mounted = False
        self._generation += 1
        await self._stop_timer()

    async def __aenter__(self) -> "ResourceSync[T]":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def update(
        self,
        *,
        key: Optional[str] = None,
        fetcher: Optional[Fetcher] = None,
        enabled: Optional[bool] = None,
        refresh_interval: Optional[float] = None,
    ) -> None:
        """Change inputs; a key or enabled change re-runs the cache check."""
        reload = False
        if key is not None and key != self.key:
            self.key = key
            reload = True
        if enabled is not None and enabled != self.enabled:
            self.enabled = enabled
            reload = True
        if fetcher is not None:
            self.fetcher = fetcher
        restart = reload
        if refresh_interval is not None and refresh_interval != self.refresh_interval:
            self.refresh_interval = refresh_interval
            restart = True

        if not self._mounted:
            return
        if reload:
            await self._load()
        if restart:
            self._restart_timer()

    # ----- operations -----

    async def refresh(self) -> Optional[T]:
        """Fetch from the backend regardless of what the cache holds."""
        if self.enabled:
            await self._fetch()
        return self.state.data

    def clear_cache(self) -> None:
        """Drop the cached entry. Data already loaded stays visible."""
        self.manager.remove(self.key)
        self.state.is_from_cache = False
        self.state.last_updated = None

    # ----- internals -----

    async def _load(self) -> None:
        if not self.enabled:
            self._generation += 1
            self.state = SyncState()
            return

        key = self.key
        self._generation += 1
        generation = self._generation
        cached = await asyncio.to_thread(self.manager.get, key)
        if not self._is_current(generation):
            return
        if cached is not None:
            logger.debug(f"CACHE HIT: {key}")
            self.state.data = cached
            self.state.loading = False
            self.state.error = None
            self.state.is_from_cache = True
            self.state.last_updated = datetime.now(timezone.utc)
            return

        logger.debug(f"CACHE MISS: {key}")
        await self._fetch()

    def _is_current(self, generation: int) -> bool:
        return self._mounted and generation == self._generation

    async def _fetch(self) -> None:
        self._generation += 1
        generation = self._generation
        key = self.key
        fetcher = self.fetcher
        ttl = self.ttl

        self.state.loading = True
        self.state.is_from_cache = False

        try:
            if self.dedupe:
                result = await self.manager.coalescer.get_or_fetch(key, fetcher)
                # Every sharer gets its own copy of the result
                result = copy.deepcopy(result)
            else:
                result = await fetcher()
        except Exception as e:
            if not self._is_current(generation):
                logger.debug(f"Discarding failed fetch for {key} (superseded)")
                return
            logger.warning(f"Fetch failed for {key}: {e}")
            self.state.error = _error_message(e)
            self.state.loading = False
            if self.fallback_data is not None:
                self.state.data = self.fallback_data
            await self._invoke(self.on_error, e)
            return

        # The cache is shared, so a result is written even if this instance
        # no longer wants it.
        await asyncio.to_thread(self.manager.set, key, result, ttl)

        if not self._is_current(generation):
            logger.debug(f"Discarding fetch result for {key} (superseded)")
            return
        self.state.data = result
        self.state.error = None
        self.state.loading = False
        self.state.last_updated = datetime.now(timezone.utc)
        await self._invoke(self.on_success, result)

    async def _invoke(self, callback: Optional[Callable[[Any], Any]], arg: Any) -> None:
        if callback is None:
            return
        try:
            outcome = callback(arg)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception(f"Callback for {self.key} raised")

    def _restart_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._mounted and self.enabled and self.refresh_interval and self.refresh_interval > 0:
            self._timer = asyncio.get_running_loop().create_task(
                self._auto_refresh(self.refresh_interval)
            )

    async def _stop_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass

    async def _auto_refresh(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            due = await asyncio.to_thread(self.manager.should_refresh, self.key, interval)
            if due:
                logger.debug(f"Auto-refresh: {self.key}")
                # Stopping the timer must not abort a fetch other callers may share
                await asyncio.shield(self._fetch())
