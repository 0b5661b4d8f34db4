"""FastAPI dependencies wiring repositories and services."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

import redis.asyncio as redis

from sales_helper.catalog.kv import KVCache
from sales_helper.catalog.service import CatalogService
from sales_helper.database import get_db
from sales_helper.lifecycle.manager import RequestLifecycleManager
from sales_helper.lifecycle.submission import SubmissionService
from sales_helper.pipedrive.client import get_deal_creator, get_pipedrive_client
from sales_helper.redis_client import get_redis
from sales_helper.repositories.request import RequestRepository


def get_request_repository(db: AsyncSession = Depends(get_db)) -> RequestRepository:
    return RequestRepository(db)


def get_lifecycle_manager() -> RequestLifecycleManager:
    return RequestLifecycleManager(get_deal_creator())


def get_submission_service(
    db: AsyncSession = Depends(get_db),
    manager: RequestLifecycleManager = Depends(get_lifecycle_manager),
) -> SubmissionService:
    return SubmissionService(db, manager)


def get_kv_cache(redis_client: redis.Redis = Depends(get_redis)) -> KVCache:
    return KVCache(redis_client)


def get_catalog_service(cache: KVCache = Depends(get_kv_cache)) -> CatalogService:
    return CatalogService(cache, get_pipedrive_client())
