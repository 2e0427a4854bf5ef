import logging
from typing import Annotated, Optional

from asyncpg import Pool
from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import HttpUrl

from src.cache import CacheUnavailable, URLCache
from src.clicks import ClickRecorder
from src.dependencies import get_cache, get_click_recorder, get_db_pool
from src.models import URLMapping, URLPage
from src.services import (
    CodeConflict,
    InvalidInput,
    PersistenceError,
    RecordNotFound,
    createShortURL,
    findMatchingURL,
    getURLStats,
    listShortURLs,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def error_response(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": str(exc)},
    )


# Routes
@router.get("/health")
async def health_check(cache: Annotated[URLCache, Depends(get_cache)]):
    # An unreachable cache is reported, never fatal
    try:
        cache_status = "ok" if await cache.ping() else "unavailable"
    except CacheUnavailable as exc:
        logger.warning(f"Health Check: cache unavailable: {exc}")
        cache_status = "unavailable"

    health_status = {"status": "healthy", "cache": cache_status}
    logger.info(f"Health Check: OK, cache {cache_status}")
    return JSONResponse(content=health_status, status_code=status.HTTP_200_OK)


@router.post(
    "/shorten", response_model=URLMapping, status_code=status.HTTP_201_CREATED
)
async def shorten(
    pool: Annotated[Pool, Depends(get_db_pool)],
    cache: Annotated[URLCache, Depends(get_cache)],
    url: HttpUrl = Body(..., embed=True),
    code: Optional[str] = Body(None, embed=True),
):
    try:
        return await createShortURL(pool, cache, str(url), code)

    except InvalidInput as exc:
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid input", exc)

    except CodeConflict as exc:
        return error_response(status.HTTP_409_CONFLICT, "Code conflict", exc)

    except PersistenceError as exc:
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", exc
        )

    except Exception as exc:
        logger.error(f"Error shortening URL: {str(exc)}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", exc
        )


@router.get("/urls", response_model=URLPage)
async def list_urls(
    pool: Annotated[Pool, Depends(get_db_pool)],
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    try:
        return await listShortURLs(pool, limit, offset)

    except Exception as exc:
        logger.error(f"Error listing URLs: {str(exc)}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", exc
        )


@router.get("/stats/{code}", response_model=URLMapping)
async def stats(pool: Annotated[Pool, Depends(get_db_pool)], code: str):
    try:
        return await getURLStats(pool, code)

    except RecordNotFound as exc:
        return error_response(status.HTTP_404_NOT_FOUND, "Content not found", exc)

    except Exception as exc:
        logger.error(f"Error reading stats for {code}: {str(exc)}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", exc
        )


@router.get("/{code}")
async def redirect(
    pool: Annotated[Pool, Depends(get_db_pool)],
    cache: Annotated[URLCache, Depends(get_cache)],
    recorder: Annotated[ClickRecorder, Depends(get_click_recorder)],
    code: str,
):
    try:
        original_url = await findMatchingURL(pool, cache, recorder, code)
        return RedirectResponse(url=original_url)

    except RecordNotFound as exc:
        return error_response(status.HTTP_404_NOT_FOUND, "Content not found", exc)

    except Exception as exc:
        logger.error(f"Error redirecting URL: {str(exc)}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", exc
        )
