"""
Back-office cache service - Main FastAPI Application
Reference data served from the local cache, fetched from the hosted database on miss
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from app.backend_client import BackofficeClient, get_backend_client
from app.cache import CacheAdmin, CacheManager, ResourceSync, get_cache_manager
from app.resources import BRANCH_RESOURCES, branches_resource, categories_resource
from app.warmup import warm_up_cache
from config.settings import settings

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v0.3.0"
APP_NAME = "Back-office Cache"

app = FastAPI(
    title=APP_NAME,
    description="Cached reference data for the furniture back office",
    version=APP_VERSION,
)


class UserProfile(BaseModel):
    """Profile of the user logging in."""
    id: str
    branch_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None


async def _serve(sync: ResourceSync, force_refresh: bool) -> Dict[str, Any]:
    """Load a resource once and shape it as a response with cache metadata."""
    await sync.start(use_cache=not force_refresh)
    await sync.close()
    state = sync.state
    if state.error and state.data is None:
        raise HTTPException(status_code=502, detail=state.error)
    return {"data": state.data, "_meta": state.to_dict()}


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "storage": settings.cache_storage}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "full": f"{APP_NAME} {APP_VERSION}",
    }


# ===== CACHE ADMIN =====

@app.get("/cache/stats")
def cache_stats(manager: CacheManager = Depends(get_cache_manager)):
    """Get cache statistics."""
    return CacheAdmin(manager).stats


@app.get("/cache/entries")
def cache_entries(manager: CacheManager = Depends(get_cache_manager)):
    """List cached entries, most recently used first."""
    return {"entries": CacheAdmin(manager).entries()}


@app.delete("/cache")
def clear_cache(
    pattern: Optional[str] = Query(default=None, min_length=1, description="Only clear keys containing this text"),
    manager: CacheManager = Depends(get_cache_manager),
):
    """Clear the whole cache, or the entries whose key contains ``pattern``."""
    admin = CacheAdmin(manager)
    if pattern is None:
        cleared = admin.clear_all_cache()
    else:
        cleared = admin.clear_cache_by_pattern(pattern)
    return {"cleared": cleared, "stats": admin.stats}


@app.post("/cache/cleanup")
def cleanup_cache(manager: CacheManager = Depends(get_cache_manager)):
    """Delete expired entries."""
    admin = CacheAdmin(manager)
    return {"removed": admin.cleanup_expired(), "stats": admin.stats}


@app.post("/cache/warmup")
async def warmup_cache(
    profile: UserProfile,
    client: BackofficeClient = Depends(get_backend_client),
    manager: CacheManager = Depends(get_cache_manager),
):
    """Preload the profile's branch data (once a day)."""
    result = await warm_up_cache(client, profile.model_dump(), manager)
    return result.to_dict()


# ===== RESOURCES =====

@app.get("/branches")
async def list_branches(
    forceRefresh: bool = Query(default=False, description="Bypass cache and fetch fresh data"),
    client: BackofficeClient = Depends(get_backend_client),
    manager: CacheManager = Depends(get_cache_manager),
):
    """Active branches."""
    return await _serve(branches_resource(client, manager=manager), forceRefresh)


@app.get("/categories")
async def list_categories(
    forceRefresh: bool = Query(default=False, description="Bypass cache and fetch fresh data"),
    client: BackofficeClient = Depends(get_backend_client),
    manager: CacheManager = Depends(get_cache_manager),
):
    """Active product categories."""
    return await _serve(categories_resource(client, manager=manager), forceRefresh)


@app.get("/branches/{branch_id}/{resource}")
async def list_branch_resource(
    branch_id: str,
    resource: str,
    forceRefresh: bool = Query(default=False, description="Bypass cache and fetch fresh data"),
    client: BackofficeClient = Depends(get_backend_client),
    manager: CacheManager = Depends(get_cache_manager),
):
    """Branch-scoped products, customers or employees."""
    factory = BRANCH_RESOURCES.get(resource)
    if factory is None:
        raise HTTPException(status_code=404, detail=f"Unknown resource: {resource}")
    return await _serve(factory(client, branch_id, manager=manager), forceRefresh)
