import logging
import os
import time
from typing import Callable, Optional, Union

from cachetools import TTLCache
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

CACHE_EXPIRY_SECONDS = int(os.getenv("CACHE_EXPIRY_SECONDS", 86400))
MEMORY_CACHE_MAXSIZE = int(os.getenv("MEMORY_CACHE_MAXSIZE", 10000))
CACHE_KEY_PREFIX = "url:"


class CacheUnavailable(Exception):
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        self.message = f"Cache operation '{operation}' failed: {details}"
        super().__init__(self.message)


def cacheKey(code: str) -> str:
    return f"{CACHE_KEY_PREFIX}{code}"


class RedisURLCache:
    """Code -> original URL cache backed by Redis.

    Entries expire a fixed number of seconds after they are written (SETEX),
    reads never extend them. Any Redis or socket failure is raised as
    CacheUnavailable so callers can fall back to the durable store.
    """

    def __init__(self, redis: Redis, ttl_seconds: int = CACHE_EXPIRY_SECONDS):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    async def get(self, code: str) -> Optional[str]:
        try:
            return await self.redis.get(cacheKey(code))
        except (RedisError, OSError) as exc:
            raise CacheUnavailable("get", str(exc)) from exc

    async def set(self, code: str, original_url: str) -> None:
        try:
            await self.redis.setex(cacheKey(code), self.ttl_seconds, original_url)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable("set", str(exc)) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError) as exc:
            raise CacheUnavailable("ping", str(exc)) from exc

    async def close(self) -> None:
        await self.redis.aclose()


class MemoryURLCache:
    """In-process stand-in for RedisURLCache, used when no Redis is configured."""

    def __init__(
        self,
        ttl_seconds: int = CACHE_EXPIRY_SECONDS,
        maxsize: int = MEMORY_CACHE_MAXSIZE,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=timer)

    async def get(self, code: str) -> Optional[str]:
        return self.entries.get(cacheKey(code))

    async def set(self, code: str, original_url: str) -> None:
        self.entries[cacheKey(code)] = original_url

    async def ping(self) -> bool:
        return True

    def clear(self) -> None:
        self.entries.clear()

    def __contains__(self, code: str) -> bool:
        return cacheKey(code) in self.entries

    async def close(self) -> None:
        self.clear()


URLCache = Union[RedisURLCache, MemoryURLCache]
