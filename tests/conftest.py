import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from asyncpg import Connection

from src.cache import MemoryURLCache
from src.clicks import ClickRecorder
from src.models import URLMapping


class InMemoryStore:
    """Dict-backed stand-in for the repository functions.

    Every method takes the connection as its first argument, like the real
    repository, and ignores it.
    """

    def __init__(self):
        self.rows: Dict[str, URLMapping] = {}

    async def codeExists(self, conn, code: str) -> bool:
        return code in self.rows

    async def insertURLMapping(
        self, conn, code: str, original_url: str
    ) -> Optional[URLMapping]:
        await asyncio.sleep(0)
        if code in self.rows:
            return None
        mapping = URLMapping(
            code=code,
            original_url=original_url,
            created_at=datetime.now(timezone.utc),
        )
        self.rows[code] = mapping
        return mapping.model_copy()

    async def getOriginalURL(self, conn, code: str) -> Optional[str]:
        mapping = self.rows.get(code)
        return mapping.original_url if mapping else None

    async def getURLMapping(self, conn, code: str) -> Optional[URLMapping]:
        mapping = self.rows.get(code)
        return mapping.model_copy() if mapping else None

    async def incrementClicks(self, conn, code: str) -> bool:
        await asyncio.sleep(0)
        mapping = self.rows.get(code)
        if mapping is None:
            return False
        mapping.clicks += 1
        mapping.last_accessed = datetime.now(timezone.utc)
        return True

    async def listURLMappings(self, conn, limit: int, offset: int) -> List[URLMapping]:
        ordered = sorted(self.rows.values(), key=lambda m: m.created_at, reverse=True)
        return [m.model_copy() for m in ordered[offset : offset + limit]]

    async def countURLMappings(self, conn) -> int:
        return len(self.rows)


class QueuePool:
    """Fixed-size pool that hands out connections first come, first served."""

    def __init__(self, size: int):
        self.free: asyncio.Queue = asyncio.Queue()
        for _ in range(size):
            self.free.put_nowait(AsyncMock(spec=Connection))

    @asynccontextmanager
    async def acquire(self):
        conn = await self.free.get()
        try:
            yield conn
        finally:
            self.free.put_nowait(conn)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def mock_conn():
    return AsyncMock(spec=Connection)


@pytest.fixture
def mock_pool(mock_conn):
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = mock_conn
    return pool


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    return MemoryURLCache(ttl_seconds=86400, timer=clock)


@pytest.fixture
def store(monkeypatch):
    store = InMemoryStore()
    for name in (
        "codeExists",
        "insertURLMapping",
        "getOriginalURL",
        "getURLMapping",
        "listURLMappings",
        "countURLMappings",
    ):
        monkeypatch.setattr(f"src.services.{name}", getattr(store, name))
    monkeypatch.setattr("src.clicks.incrementClicks", store.incrementClicks)
    return store


@pytest.fixture
def recorder(mock_pool):
    return ClickRecorder(mock_pool)


@pytest.fixture
def make_pool():
    return QueuePool
