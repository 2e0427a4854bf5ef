import asyncio
import logging
import os
from typing import Optional

import asyncpg
from asyncpg import Connection, Pool

from src.cache import CacheUnavailable, URLCache
from src.clicks import ClickRecorder
from src.helpers import RESERVED_CODES, generate_code, is_valid_code
from src.models import URLMapping, URLPage
from src.repository import (
    codeExists,
    countURLMappings,
    getOriginalURL,
    getURLMapping,
    insertURLMapping,
    listURLMappings,
)

logger = logging.getLogger(__name__)

CODE_COLLISION_RETRIES = int(os.getenv("CODE_COLLISION_RETRIES", 0))

STORE_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


class InvalidInput(Exception):
    def __init__(self, field: str, details: str):
        self.field = field
        self.details = details
        self.message = f"Invalid {field}: {details}"
        super().__init__(self.message)


class CodeConflict(Exception):
    def __init__(self, code: str):
        self.code = code
        self.message = f"Short code already exists: {code}"
        super().__init__(self.message)


class RecordNotFound(Exception):
    def __init__(self, record_type: str, identifier: str):
        self.record_type = record_type
        self.identifier = identifier
        self.message = f"{record_type} not found for identifier: {identifier}"
        super().__init__(self.message)


class PersistenceError(Exception):
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        self.message = f"Store operation '{operation}' failed: {details}"
        super().__init__(self.message)


def validateCode(code: str):
    if not is_valid_code(code):
        raise InvalidInput(
            "short code",
            f"'{code}' must be 1-50 characters of letters, digits, '-' or '_'",
        )
    if code in RESERVED_CODES:
        raise InvalidInput("short code", f"'{code}' is reserved")


async def readCache(cache: URLCache, code: str) -> Optional[str]:
    try:
        return await cache.get(code)
    except CacheUnavailable as exc:
        logger.warning(f"Cache unavailable, falling back to store for {code}: {exc}")
        return None


async def writeCache(cache: URLCache, code: str, original_url: str):
    try:
        await cache.set(code, original_url)
    except CacheUnavailable as exc:
        logger.warning(f"Cache unavailable, skipped caching {code}: {exc}")


async def insertGeneratedCode(conn: Connection, original_url: str) -> URLMapping:
    attempts = CODE_COLLISION_RETRIES + 1
    for attempt in range(1, attempts + 1):
        code = generate_code()
        while code in RESERVED_CODES:
            code = generate_code()
        mapping = await insertURLMapping(conn, code, original_url)
        if mapping is not None:
            return mapping
        logger.warning(f"Generated code collided: {code} (attempt {attempt}/{attempts})")
    raise CodeConflict(code)


async def createShortURL(
    pool: Pool, cache: URLCache, original_url: str, code: Optional[str] = None
) -> URLMapping:
    if code is not None:
        validateCode(code)

    try:
        async with pool.acquire() as conn:
            if code is None:
                mapping = await insertGeneratedCode(conn, original_url)
            else:
                # Advisory only, the conditional insert below is authoritative
                if await codeExists(conn, code):
                    logger.warning(f"Custom code already taken: {code}")
                    raise CodeConflict(code)
                mapping = await insertURLMapping(conn, code, original_url)
                if mapping is None:
                    logger.warning(f"Custom code taken concurrently: {code}")
                    raise CodeConflict(code)
    except STORE_ERRORS as exc:
        logger.error(f"Could not persist mapping for url {original_url}: {exc}")
        raise PersistenceError("create", str(exc)) from exc

    await writeCache(cache, mapping.code, mapping.original_url)
    logger.info(f"URL shortened and cached: {mapping.original_url} -> {mapping.code}")

    return mapping


async def findMatchingURL(
    pool: Pool, cache: URLCache, recorder: ClickRecorder, code: str
) -> str:
    if not is_valid_code(code):
        raise RecordNotFound("Original URL", code)

    cached_url = await readCache(cache, code)
    if cached_url:
        logger.info(f"Cache hit - Redirecting: {code} -> {cached_url}")
        recorder.record(code)
        return cached_url

    try:
        async with pool.acquire() as conn:
            original_url = await getOriginalURL(conn, code)
    except STORE_ERRORS as exc:
        logger.error(f"Could not look up code {code}: {exc}")
        raise PersistenceError("resolve", str(exc)) from exc

    if original_url is None:
        logger.warning(f"Cannot find matching URL for code: {code}")
        raise RecordNotFound("Original URL", code)

    await writeCache(cache, code, original_url)
    logger.info(f"URL found and cached - Redirecting: {code} -> {original_url}")
    recorder.record(code)

    return original_url


async def getURLStats(pool: Pool, code: str) -> URLMapping:
    if not is_valid_code(code):
        raise RecordNotFound("URL mapping", code)

    try:
        async with pool.acquire() as conn:
            mapping = await getURLMapping(conn, code)
    except STORE_ERRORS as exc:
        raise PersistenceError("stats", str(exc)) from exc

    if mapping is None:
        raise RecordNotFound("URL mapping", code)
    return mapping


async def listShortURLs(pool: Pool, limit: int, offset: int) -> URLPage:
    try:
        async with pool.acquire() as conn:
            items = await listURLMappings(conn, limit, offset)
            total = await countURLMappings(conn)
    except STORE_ERRORS as exc:
        raise PersistenceError("list", str(exc)) from exc

    return URLPage(items=items, total=total, limit=limit, offset=offset)
