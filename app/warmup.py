"""
Daily cache warm-up at login and cache purge at sign-out.

The first login of the day preloads the reference data a branch works with
(branches, categories, employees, customers, in-stock products) so later
screens are served from cache.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.backend_client import BackofficeClient
from app.cache import (
    CacheManager,
    DAILY_REFRESH_INTERVAL,
    ResourceType,
    cache_key_for,
    get_cache_manager,
)
from app.resources import (
    fetch_branches,
    fetch_categories,
    fetch_customers,
    fetch_employees,
    fetch_products,
)

logger = logging.getLogger("warmup")


@dataclass
class WarmupResult:
    """Outcome of a warm-up run."""
    skipped: bool = False
    reason: Optional[str] = None
    loaded: Dict[str, int] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "reason": self.reason,
            "loaded": self.loaded,
            "failed": self.failed,
        }


async def warm_up_cache(
    client: BackofficeClient,
    profile: Dict[str, Any],
    manager: Optional[CacheManager] = None,
    interval: float = DAILY_REFRESH_INTERVAL,
) -> WarmupResult:
    """
    Preload reference data for the profile's branch.

    Runs only when the branches entry is missing or older than ``interval``.
    Each resource is fetched independently; one failure does not stop the rest.
    """
    manager = manager or get_cache_manager()
    branch_id = profile.get("branch_id")

    if not profile.get("id") or not branch_id:
        logger.info("Cannot warm up cache: missing user or branch info")
        return WarmupResult(skipped=True, reason="missing user or branch")

    if not manager.should_refresh(cache_key_for(ResourceType.BRANCHES), interval):
        logger.info("Using existing cache data")
        return WarmupResult(skipped=True, reason="cache is current")

    logger.info(f"Warming up cache for branch {branch_id}")

    jobs = {
        "branches": (fetch_branches(client), manager.set_branches),
        "categories": (fetch_categories(client), manager.set_categories),
        "employees": (
            fetch_employees(client, branch_id),
            lambda rows: manager.set_employees(rows, branch_id),
        ),
        "customers": (
            fetch_customers(client, branch_id),
            lambda rows: manager.set_customers(rows, branch_id),
        ),
        "products": (
            fetch_products(client, branch_id),
            lambda rows: manager.set_products(rows, branch_id),
        ),
    }
    outcomes: List[Any] = await asyncio.gather(
        *(fetch for fetch, _ in jobs.values()), return_exceptions=True
    )

    result = WarmupResult()
    for (name, (_, store)), outcome in zip(jobs.items(), outcomes):
        if isinstance(outcome, BaseException):
            logger.warning(f"Warm-up failed for {name}: {outcome}")
            result.failed[name] = str(outcome) or outcome.__class__.__name__
            continue
        store(outcome)
        result.loaded[name] = len(outcome)
        logger.info(f"Cached {name}: {len(outcome)}")

    manager.set_user_profile(profile)
    logger.info(
        f"Cache warm-up completed ({len(result.loaded)} loaded, {len(result.failed)} failed)"
    )
    return result


def clear_cache_on_sign_out(manager: Optional[CacheManager] = None) -> int:
    """Remove all cached data for the signed-out user."""
    manager = manager or get_cache_manager()
    return manager.clear_all()
