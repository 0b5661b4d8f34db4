"""Read-through catalog of contacts and products.

Fresh cache → served as is. Otherwise Pipedrive is asked and the cache
refreshed. If Pipedrive fails, whatever the cache still holds is served
with ``stale=True``; with nothing cached the failure surfaces.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog
from redis.exceptions import RedisError

from sales_helper.catalog.kv import CONTACTS_KEY, PRODUCTS_KEY, CacheEntry, KVCache
from sales_helper.catalog.transform import (
    contacts_hierarchy,
    filter_contacts,
    products_catalog,
)
from sales_helper.config import settings
from sales_helper.errors import AppError, ExternalError
from sales_helper.pipedrive.client import PipedriveClient

logger = structlog.get_logger()


@dataclass
class CatalogResult:
    data: Any
    stale: bool
    source: str  # cache | pipedrive | cache_fallback
    error: Optional[str] = None

    def to_dict(self) -> dict:
        body = {"ok": True, "data": self.data, "stale": self.stale, "source": self.source}
        if self.error:
            body["error"] = self.error
        return body


class CatalogService:
    def __init__(self, cache: KVCache, pipedrive: PipedriveClient):
        self.cache = cache
        self.pipedrive = pipedrive

    async def contacts(self, query: Optional[str] = None, force_refresh: bool = False) -> CatalogResult:
        result = await self._read_through(CONTACTS_KEY, self._load_contacts, force_refresh)
        if query:
            result.data = filter_contacts(result.data, query)
        return result

    async def products(self, force_refresh: bool = False) -> CatalogResult:
        return await self._read_through(PRODUCTS_KEY, self._load_products, force_refresh)

    async def refresh(self) -> list[str]:
        """Drop both cached datasets so the next read goes to Pipedrive."""
        keys = [CONTACTS_KEY, PRODUCTS_KEY]
        for key in keys:
            await self.cache.bust(key)
        return keys

    async def _load_contacts(self) -> dict:
        persons, organizations = await self.pipedrive.fetch_contacts()
        return contacts_hierarchy(persons, organizations, settings.pipedrive_mine_group_field)

    async def _load_products(self) -> dict:
        return products_catalog(await self.pipedrive.fetch_products())

    async def _read_through(
        self,
        key: str,
        load: Callable[[], Awaitable[Any]],
        force_refresh: bool,
    ) -> CatalogResult:
        cached: Optional[CacheEntry] = None
        try:
            cached = await self.cache.get(key)
        except RedisError as e:
            logger.warning("cache_unavailable", key=key, error=str(e))

        if cached is not None and not cached.stale and not force_refresh:
            return CatalogResult(data=cached.data, stale=False, source="cache")

        try:
            data = await load()
        except AppError as e:
            logger.error("catalog_fetch_failed", key=key, error=e.message)
            if cached is not None:
                logger.warning("serving_stale_catalog", key=key, ttl_seconds=cached.ttl)
                return CatalogResult(
                    data=cached.data,
                    stale=True,
                    source="cache_fallback",
                    error="Pipedrive temporarily unavailable",
                )
            raise ExternalError(
                f"Unable to fetch {key.split(':')[0]} and no cached data available"
            ) from e

        try:
            await self.cache.set(key, data)
        except RedisError as e:
            logger.warning("cache_update_failed", key=key, error=str(e))

        logger.info("catalog_refreshed", key=key, entries=len(data))
        return CatalogResult(data=data, stale=False, source="pipedrive")
