# manages connections to the hosted document database
import asyncio
import os.path
from contextlib import asynccontextmanager
from sqlite3 import Row
from typing import AsyncIterator

import aiosqlite

from utils.logger import get_logger

_logger = get_logger(__name__)

SCHEMA_SCRIPT = os.path.join(os.path.dirname(__file__), "tables.sql")

# seconds a writer waits for another connection's transaction to finish
BUSY_TIMEOUT = 10.0


async def _init_db(conn: aiosqlite.Connection) -> None:
    _logger.info(f"Initializing database with script {SCHEMA_SCRIPT}...")
    with open(SCHEMA_SCRIPT, "r") as f:
        await conn.executescript(f.read())
    await conn.commit()


async def table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


class Database:
    """
    Opens aiosqlite connections to one database file and creates the schema
    the first time any connection is made.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding a connection in autocommit mode;
        callers open explicit transactions with BEGIN when they need one.
        """
        folder = os.path.dirname(self.path)
        if folder:
            os.makedirs(folder, exist_ok=True)

        conn = await aiosqlite.connect(
            self.path, timeout=BUSY_TIMEOUT, isolation_level=None
        )
        conn.row_factory = Row

        if not self._initialized:
            async with self._init_lock:
                if not self._initialized:
                    if not await table_exists(conn, "documents"):
                        await _init_db(conn)
                    self._initialized = True
        try:
            yield conn
        finally:
            await conn.close()
