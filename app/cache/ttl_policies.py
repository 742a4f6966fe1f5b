"""
TTL configuration and cache key templates for back-office resources.
"""
from enum import Enum
from typing import Any, Dict, Optional

HOUR = 60 * 60

# How often reference data is reloaded at login (first login of the day)
DAILY_REFRESH_INTERVAL = 24 * HOUR


class ResourceType(Enum):
    """Cached back-office resources."""
    BRANCHES = "branches"
    CATEGORIES = "categories"
    EMPLOYEES = "employees"
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    USER_PROFILE = "user_profile"


# TTL configuration by resource (in seconds)
TTL_CONFIG: Dict[ResourceType, Dict[str, Any]] = {
    ResourceType.BRANCHES: {
        "ttl": 24 * HOUR,         # Near-static
        "per_branch": False,
    },
    ResourceType.CATEGORIES: {
        "ttl": 24 * HOUR,         # Near-static
        "per_branch": False,
    },
    ResourceType.EMPLOYEES: {
        "ttl": 4 * HOUR,          # Changes with shifts and hiring
        "per_branch": True,
    },
    ResourceType.CUSTOMERS: {
        "ttl": 2 * HOUR,          # New customers registered at the counter
        "per_branch": True,
    },
    ResourceType.PRODUCTS: {
        "ttl": 2 * HOUR,          # Stock moves during the day
        "per_branch": True,
    },
    ResourceType.USER_PROFILE: {
        "ttl": 24 * HOUR,
        "per_branch": False,
    },
}


def get_ttl_for_resource(resource: ResourceType) -> float:
    """TTL in seconds for a resource type."""
    return TTL_CONFIG[resource]["ttl"]


def cache_key_for(resource: ResourceType, branch_id: Optional[str] = None) -> str:
    """
    Build the cache key for a resource.

    Branch-scoped resources are keyed as ``<resource>_<branch_id>``
    (e.g. ``products_branch123``).

    Raises:
        ValueError: If a branch-scoped resource is requested without a branch
    """
    if not TTL_CONFIG[resource]["per_branch"]:
        return resource.value
    if not branch_id:
        raise ValueError(f"{resource.value} cache requires a branch_id")
    return f"{resource.value}_{branch_id}"
