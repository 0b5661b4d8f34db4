"""Redis-backed key/value cache with a staleness flag."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Optional

import redis.asyncio as redis
import structlog

from sales_helper.config import settings

logger = structlog.get_logger()

CONTACTS_KEY = "contacts:hierarchical:v1"
PRODUCTS_KEY = "products:categorized:v1"
HEALTH_PROBE_KEY = "health:probe"


@dataclass
class CacheEntry:
    data: Any
    timestamp: int  # epoch milliseconds when stored
    ttl: int  # seconds left in Redis, negative when unknown
    stale: bool
    source: str = "redis"


def _decode(raw: str, default_timestamp: int) -> tuple[Any, int]:
    envelope = json.loads(raw)
    if not isinstance(envelope, dict) or "data" not in envelope:
        raise ValueError("cache envelope is not a {data, timestamp} object")
    return envelope["data"], int(envelope.get("timestamp") or default_timestamp)


class KVCache:
    """Stores ``{"data", "timestamp"}`` envelopes in Redis.

    Entries live for ``stale_ttl`` seconds but are reported stale once
    older than ``max_age`` so callers can serve them as a fallback while
    saying so.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        max_age: Optional[int] = None,
        stale_ttl: Optional[int] = None,
    ):
        self.redis = redis_client
        self.max_age = max_age if max_age is not None else settings.cache_max_age_seconds
        self.stale_ttl = stale_ttl if stale_ttl is not None else settings.cache_stale_ttl_seconds

    async def get(self, key: str) -> Optional[CacheEntry]:
        raw = await self.redis.get(key)
        if raw is None:
            logger.debug("cache_miss", key=key)
            return None
        now_ms = int(time.time() * 1000)
        try:
            data, timestamp = _decode(raw, now_ms)
        except (TypeError, ValueError) as e:
            # Unreadable entries count as a miss; the next load overwrites them.
            logger.warning("cache_corrupt", key=key, error=str(e))
            return None

        ttl = await self.redis.ttl(key)
        age_seconds = (now_ms - timestamp) / 1000
        stale = ttl < 0 or age_seconds > self.max_age

        logger.debug(
            "cache_stale_hit" if stale else "cache_hit",
            key=key,
            age_hours=round(age_seconds / 3600, 2),
            ttl_seconds=ttl,
        )
        return CacheEntry(
            data=data,
            timestamp=timestamp,
            ttl=ttl,
            stale=stale,
        )

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        payload = json.dumps({"data": value, "timestamp": int(time.time() * 1000)})
        ttl = ttl_seconds or self.stale_ttl
        await self.redis.setex(key, ttl, payload)
        logger.debug("cache_set", key=key, ttl_seconds=ttl, size=len(payload))

    async def bust(self, key: str) -> bool:
        existed = bool(await self.redis.delete(key))
        logger.info("cache_busted", key=key, existed=existed)
        return existed

    async def bust_pattern(self, pattern: str) -> int:
        keys = [key async for key in self.redis.scan_iter(match=pattern, count=100)]
        if keys:
            await self.redis.delete(*keys)
        logger.info("cache_pattern_busted", pattern=pattern, count=len(keys))
        return len(keys)

    async def probe(self) -> bool:
        """Round-trip a short-lived key."""
        await self.redis.set(HEALTH_PROBE_KEY, "1", ex=30)
        return await self.redis.get(HEALTH_PROBE_KEY) == "1"

    async def stats(self) -> dict:
        info = await self.redis.info()
        return {
            "memory_usage": info.get("used_memory_human", "Unknown"),
            "connected_clients": int(info.get("connected_clients", 0)),
            "total_commands_processed": int(info.get("total_commands_processed", 0)),
        }
