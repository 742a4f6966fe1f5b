"""
Request coalescing to prevent duplicate backend calls.

When several synchronizers ask for the same key while a fetch is already
running, only one backend call is made and every caller shares its outcome.
"""
import asyncio
import time
import logging
from typing import Any, Awaitable, Callable, Dict
from dataclasses import dataclass, field

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress backend request."""
    task: asyncio.Future
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same cache key share one fetch.

    Pattern:
    - First request for a key initiates the fetch
    - Every caller, initiator included, awaits the shared fetch task
    - When the fetch completes, all waiters receive the same result or error

    Usage:
        coalescer = RequestCoalescer()
        result = await coalescer.get_or_fetch(
            cache_key="products_branch123",
            fetch_fn=lambda: client.select("products"),
        )
    """

    def __init__(self, timeout: float = 30.0):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds a waiter waits for an in-flight request
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._timeout = timeout

    async def get_or_fetch(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight request or initiate a new one.

        Raises:
            TimeoutError: If waiting for an in-flight request times out
            Exception: Any error from fetch_fn is propagated to every caller
        """
        in_flight = self._in_flight.get(cache_key)
        if in_flight is not None:
            in_flight.waiter_count += 1
            logger.debug(
                f"Coalescing request for {cache_key} "
                f"(waiters: {in_flight.waiter_count})"
            )
            try:
                return await asyncio.wait_for(
                    asyncio.shield(in_flight.task), timeout=self._timeout
                )
            except asyncio.TimeoutError:
                logger.error(f"Timeout waiting for coalesced request: {cache_key}")
                raise TimeoutError(
                    f"Request for {cache_key} timed out after {self._timeout}s"
                ) from None

        task = asyncio.ensure_future(fetch_fn())
        in_flight = InFlightRequest(task=task)
        self._in_flight[cache_key] = in_flight
        task.add_done_callback(
            lambda done: self._finish(cache_key, in_flight, done)
        )
        logger.debug(f"Initiating fetch for {cache_key}")

        # Cancelling a caller never cancels the shared fetch task
        return await asyncio.shield(task)

    def _finish(self, cache_key: str, in_flight: InFlightRequest, task: asyncio.Future) -> None:
        if self._in_flight.get(cache_key) is in_flight:
            del self._in_flight[cache_key]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Fetch failed for {cache_key}: {error}")

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
        }
