from typing import List, Optional

from asyncpg import Connection, Record

from src.models import URLMapping

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS url_mappings (
        id SERIAL PRIMARY KEY,
        code VARCHAR(50) UNIQUE NOT NULL,
        original_url TEXT NOT NULL,
        clicks INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        last_accessed TIMESTAMPTZ
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_url_mappings_created_at
    ON url_mappings (created_at DESC)
    """,
)

MAPPING_COLUMNS = "code, original_url, clicks, created_at, last_accessed"


def toURLMapping(record: Record) -> URLMapping:
    return URLMapping(
        code=record["code"],
        original_url=record["original_url"],
        clicks=record["clicks"],
        created_at=record["created_at"],
        last_accessed=record["last_accessed"],
    )


async def initSchema(conn: Connection) -> None:
    async with conn.transaction():
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)


async def insertURLMapping(
    conn: Connection, code: str, original_url: str
) -> Optional[URLMapping]:
    """Insert a new mapping, returning None if the code is already taken."""

    result = await conn.fetchrow(
        f"""
        INSERT INTO url_mappings (code, original_url)
        VALUES ($1, $2)
        ON CONFLICT (code) DO NOTHING
        RETURNING {MAPPING_COLUMNS}
        """,
        code,
        original_url,
    )
    if result:
        return toURLMapping(result)
    return None


async def codeExists(conn: Connection, code: str) -> bool:
    result = await conn.fetchval(
        """
        SELECT EXISTS (SELECT 1 FROM url_mappings WHERE code = $1)
        """,
        code,
    )
    return bool(result)


async def getOriginalURL(conn: Connection, code: str) -> Optional[str]:
    result = await conn.fetchrow(
        """
        SELECT original_url FROM url_mappings WHERE code = $1
        """,
        code,
    )

    if result:
        return result["original_url"]
    return None


async def getURLMapping(conn: Connection, code: str) -> Optional[URLMapping]:
    result = await conn.fetchrow(
        f"""
        SELECT {MAPPING_COLUMNS} FROM url_mappings WHERE code = $1
        """,
        code,
    )

    if result:
        return toURLMapping(result)
    return None


async def incrementClicks(conn: Connection, code: str) -> bool:
    status = await conn.execute(
        """
        UPDATE url_mappings
        SET clicks = clicks + 1,
            last_accessed = CURRENT_TIMESTAMP
        WHERE code = $1
        """,
        code,
    )
    # asyncpg returns the command tag, e.g. "UPDATE 1"
    return status == "UPDATE 1"


async def listURLMappings(
    conn: Connection, limit: int, offset: int
) -> List[URLMapping]:
    results = await conn.fetch(
        f"""
        SELECT {MAPPING_COLUMNS} FROM url_mappings
        ORDER BY created_at DESC, id DESC
        LIMIT $1 OFFSET $2
        """,
        limit,
        offset,
    )
    return [toURLMapping(result) for result in results]


async def countURLMappings(conn: Connection) -> int:
    result = await conn.fetchval("SELECT COUNT(*) FROM url_mappings")
    return int(result or 0)
