"""
Back-office resources served through the cache.

Each factory returns a ResourceSync preconfigured with the resource's cache
key, TTL and a fetcher that queries the hosted database. Extra keyword
arguments (refresh_interval, on_success, fallback_data, ...) are passed
through to ResourceSync.
"""
from typing import Any, Dict, List

from app.backend_client import BackofficeClient
from app.cache import ResourceSync, ResourceType, cache_key_for, get_ttl_for_resource

Rows = List[Dict[str, Any]]

ACTIVE = {"status": "active"}

EMPLOYEE_COLUMNS = "*,department:departments(id,name),position:positions(id,name)"
PRODUCT_COLUMNS = (
    "*,category:product_categories(id,name,code),"
    "inventory:product_inventory(branch_id,quantity,available_quantity,status)"
)


# ===== FETCHERS =====

async def fetch_branches(client: BackofficeClient) -> Rows:
    return await client.select("branches", filters=ACTIVE, order="name")


async def fetch_categories(client: BackofficeClient) -> Rows:
    return await client.select("product_categories", filters=ACTIVE, order="name")


async def fetch_employees(client: BackofficeClient, branch_id: str) -> Rows:
    return await client.select(
        "employees",
        columns=EMPLOYEE_COLUMNS,
        filters={"branch_id": branch_id, **ACTIVE},
        order="first_name",
    )


async def fetch_customers(client: BackofficeClient, branch_id: str) -> Rows:
    return await client.select(
        "customers",
        filters={"branch_id": branch_id, **ACTIVE},
        order="name",
    )


def filter_branch_products(products: Rows, branch_id: str) -> Rows:
    """Keep products that have stock on hand at the given branch."""
    return [
        product for product in products
        if any(
            inv.get("branch_id") == branch_id and (inv.get("quantity") or 0) > 0
            for inv in (product.get("inventory") or [])
        )
    ]


async def fetch_products(client: BackofficeClient, branch_id: str) -> Rows:
    products = await client.select(
        "products", columns=PRODUCT_COLUMNS, filters=ACTIVE, order="name"
    )
    return filter_branch_products(products, branch_id)


# ===== SYNCHRONIZERS =====

def _resource(resource: ResourceType, fetcher, branch_id=None, **options) -> ResourceSync[Rows]:
    return ResourceSync(
        cache_key_for(resource, branch_id),
        fetcher,
        ttl=get_ttl_for_resource(resource),
        **options,
    )


def branches_resource(client: BackofficeClient, **options) -> ResourceSync[Rows]:
    return _resource(ResourceType.BRANCHES, lambda: fetch_branches(client), **options)


def categories_resource(client: BackofficeClient, **options) -> ResourceSync[Rows]:
    return _resource(ResourceType.CATEGORIES, lambda: fetch_categories(client), **options)


def employees_resource(client: BackofficeClient, branch_id: str, **options) -> ResourceSync[Rows]:
    return _resource(
        ResourceType.EMPLOYEES,
        lambda: fetch_employees(client, branch_id),
        branch_id,
        **options,
    )


def customers_resource(client: BackofficeClient, branch_id: str, **options) -> ResourceSync[Rows]:
    return _resource(
        ResourceType.CUSTOMERS,
        lambda: fetch_customers(client, branch_id),
        branch_id,
        **options,
    )


def products_resource(client: BackofficeClient, branch_id: str, **options) -> ResourceSync[Rows]:
    return _resource(
        ResourceType.PRODUCTS,
        lambda: fetch_products(client, branch_id),
        branch_id,
        **options,
    )


BRANCH_RESOURCES = {
    "products": products_resource,
    "customers": customers_resource,
    "employees": employees_resource,
}
