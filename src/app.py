import logging
import os
from logging.handlers import TimedRotatingFileHandler

import asyncpg
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from redis.asyncio import Redis

from src.cache import MemoryURLCache, RedisURLCache
from src.clicks import CLICK_UPDATE_CONCURRENCY, ClickRecorder
from src.controller import router
from src.repository import initSchema

load_dotenv()


def database_url_from_env() -> str:
    return "postgresql://{user}:{password}@{host}:{port}/{database}".format(
        user=os.getenv("POSTGRES_USER", "postgres"),
        password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        host=os.getenv("POSTGRES_HOST", "localhost"),
        port=os.getenv("POSTGRES_PORT", "5432"),
        database=os.getenv("POSTGRES_DB", "urlshortener"),
    )


DATABASE_URL = os.getenv("DATABASE_URL") or database_url_from_env()
DB_POOL_MIN_SIZE = int(os.getenv("DB_POOL_MIN_SIZE", 5))
DB_POOL_MAX_SIZE = int(os.getenv("DB_POOL_MAX_SIZE", 20))
REDIS_URL = os.getenv("REDIS_URL")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")

# Logging
handlers: list[logging.Handler] = [logging.StreamHandler()]
if LOG_FILE:
    handlers.append(
        TimedRotatingFileHandler(
            filename=LOG_FILE,
            when="W0",
            interval=1,
            backupCount=4,
            encoding="utf-8",
        )
    )

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(levelname)s - %(asctime)s - %(message)s",
    handlers=handlers,
)
logger = logging.getLogger(__name__)

# Set up app
app = FastAPI(title="ClipURL - URL Shortener")
app.include_router(router)


# App lifecycle
@app.on_event("startup")
async def startup_event():
    app.state.db_pool = await asyncpg.create_pool(
        DATABASE_URL, min_size=DB_POOL_MIN_SIZE, max_size=DB_POOL_MAX_SIZE
    )
    async with app.state.db_pool.acquire() as conn:
        await initSchema(conn)

    if REDIS_URL:
        app.state.cache = RedisURLCache(
            Redis.from_url(REDIS_URL, encoding="utf-8", decode_responses=True)
        )
    else:
        app.state.cache = MemoryURLCache()
        logger.warning("REDIS_URL not set, using in-process memory cache")

    # Leave at least one pooled connection for redirect reads
    click_slots = max(1, min(CLICK_UPDATE_CONCURRENCY, DB_POOL_MAX_SIZE - 1))
    app.state.click_recorder = ClickRecorder(app.state.db_pool, click_slots)
    logger.info("Application started, postgres database and cache initialized")


@app.on_event("shutdown")
async def shutdown_event():
    await app.state.click_recorder.drain()
    await app.state.db_pool.close()
    await app.state.cache.close()
    logger.info("Application shut down, postgres database and cache connections closed")


def main():
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower())
