import asyncio
import logging
import os
from typing import Set

from asyncpg import Pool

from src.repository import incrementClicks

logger = logging.getLogger(__name__)

CLICK_UPDATE_CONCURRENCY = int(os.getenv("CLICK_UPDATE_CONCURRENCY", 4))


class ClickRecorder:
    """Runs click counter updates as detached background tasks.

    Each update gets its own task, so it is not tied to the request that
    triggered it. At most max_concurrency updates hold a pooled connection
    at once, the rest of the pool stays free for redirect reads. Failures
    are logged and dropped, never retried.
    """

    def __init__(self, pool: Pool, max_concurrency: int = CLICK_UPDATE_CONCURRENCY):
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        self.pool = pool
        self._slots = asyncio.Semaphore(max_concurrency)
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(self, code: str) -> None:
        task = asyncio.create_task(self._increment(code))
        # The event loop only keeps weak references to tasks
        self._pending.add(task)
        task.add_done_callback(lambda done: self._finished(code, done))

    async def _increment(self, code: str) -> None:
        async with self._slots:
            async with self.pool.acquire() as conn:
                updated = await incrementClicks(conn, code)
        if not updated:
            logger.warning(f"Click not recorded, no mapping for code: {code}")

    def _finished(self, code: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning(f"Click update cancelled for code: {code}")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Error recording click for code {code}: {exc!r}")

    async def drain(self) -> None:
        """Wait until every scheduled click update has finished."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
