from typing import AsyncGenerator

from asyncpg import Pool
from fastapi import Request

from src.cache import URLCache
from src.clicks import ClickRecorder


async def get_db_pool(request: Request) -> AsyncGenerator[Pool, None]:
    yield request.app.state.db_pool


async def get_cache(request: Request) -> AsyncGenerator[URLCache, None]:
    yield request.app.state.cache


async def get_click_recorder(request: Request) -> AsyncGenerator[ClickRecorder, None]:
    yield request.app.state.click_recorder
