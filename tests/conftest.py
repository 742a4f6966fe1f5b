"""
Shared fixtures: controllable clock, isolated cache manager, fake backend.
"""
import asyncio
from typing import Any, Dict, List, Optional

import pytest

from app.cache import CacheManager, CacheStore, MemoryStorage


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """Stands in for BackofficeClient; records every query."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables = tables or {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[Dict[str, Any]] = []

    async def select(self, table, columns="*", filters=None, order=None):
        self.calls.append(
            {"table": table, "columns": columns, "filters": filters or {}, "order": order}
        )
        await asyncio.sleep(0)
        if table in self.failures:
            raise self.failures[table]
        rows = self.tables.get(table, [])
        for column, value in (filters or {}).items():
            if column == "status":
                rows = [r for r in rows if r.get("status", "active") == value]
            else:
                rows = [r for r in rows if r.get(column) == value]
        return [dict(r) for r in rows]

    def tables_called(self) -> List[str]:
        return [call["table"] for call in self.calls]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return CacheStore(MemoryStorage(), clock=clock)


@pytest.fixture
def manager(store):
    return CacheManager(store)


@pytest.fixture
def backend():
    return FakeBackend({
        "branches": [
            {"id": "b1", "name": "Central", "status": "active"},
            {"id": "b2", "name": "Riverside", "status": "active"},
            {"id": "b3", "name": "Old Town", "status": "closed"},
        ],
        "product_categories": [
            {"id": "c1", "name": "Sofas", "code": "SOF", "status": "active"},
            {"id": "c2", "name": "Beds", "code": "BED", "status": "active"},
        ],
        "employees": [
            {"id": "e1", "first_name": "Ann", "branch_id": "b1", "status": "active"},
            {"id": "e2", "first_name": "Ben", "branch_id": "b2", "status": "active"},
        ],
        "customers": [
            {"id": "u1", "name": "Chai", "branch_id": "b1", "status": "active"},
            {"id": "u2", "name": "Dao", "branch_id": "b1", "status": "active"},
        ],
        "products": [
            {
                "id": "p1", "name": "Corner sofa", "status": "active",
                "inventory": [{"branch_id": "b1", "quantity": 3}],
            },
            {
                "id": "p2", "name": "Oak bed", "status": "active",
                "inventory": [{"branch_id": "b1", "quantity": 0}, {"branch_id": "b2", "quantity": 5}],
            },
            {"id": "p3", "name": "Stool", "status": "active", "inventory": []},
        ],
    })
