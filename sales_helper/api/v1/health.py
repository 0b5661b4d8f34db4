"""Liveness of the database and Redis."""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

import redis.asyncio as redis
from redis.exceptions import RedisError

from sales_helper.config import settings
from sales_helper.database import get_db
from sales_helper.redis_client import get_redis

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis),
):
    checks = {"database": "ok", "redis": "ok"}

    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health_database_failed", error=str(e))
        checks["database"] = "error"

    try:
        await redis_client.ping()
    except RedisError as e:
        logger.error("health_redis_failed", error=str(e))
        checks["redis"] = "error"

    ok = all(value == "ok" for value in checks.values())
    body = {
        "ok": ok,
        "checks": checks,
        "environment": settings.environment,
        "submitMode": settings.external_submit_mode,
    }
    return body if ok else JSONResponse(status_code=503, content=body)
