"""Cached contact and product lookups."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from sales_helper.api.dependencies import get_catalog_service, get_kv_cache
from sales_helper.catalog.kv import KVCache
from sales_helper.catalog.service import CatalogService

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/contacts")
async def list_contacts(
    q: Optional[str] = Query(None, description="Filter by name, mine or group"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict:
    """Contacts grouped Mine Group > Mine Name, with the cache ``stale`` flag."""
    result = await catalog.contacts(query=q, force_refresh=force_refresh)
    return result.to_dict()


@router.get("/products")
async def list_products(
    force_refresh: bool = Query(False, alias="forceRefresh"),
    catalog: CatalogService = Depends(get_catalog_service),
) -> dict:
    result = await catalog.products(force_refresh=force_refresh)
    return result.to_dict()


@router.post("/cache/refresh")
async def refresh_cache(catalog: CatalogService = Depends(get_catalog_service)) -> dict:
    busted = await catalog.refresh()
    logger.info("cache_refreshed", keys=busted)
    return {"ok": True, "message": "Cache refreshed successfully", "bustedKeys": busted}


@router.get("/cache/health")
async def cache_health(cache: KVCache = Depends(get_kv_cache)):
    try:
        ok = await cache.probe()
        stats = await cache.stats()
    except RedisError as e:
        logger.error("cache_health_failed", error=str(e))
        return JSONResponse(status_code=503, content={"ok": False, "error": str(e)})
    return {"ok": ok, "stats": stats}
