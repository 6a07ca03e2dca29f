"""SQLite database setup and table creation."""

import logging

import aiosqlite

from changewatch.errors import StoreConnectionError

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS product_snapshots (
        id TEXT PRIMARY KEY,
        competitors_hash TEXT NOT NULL,
        competitors TEXT NOT NULL DEFAULT '[]',
        last_checked TEXT NOT NULL,
        last_changed TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS run_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        added INTEGER DEFAULT 0,
        removed INTEGER DEFAULT 0,
        checked INTEGER DEFAULT 0,
        updated INTEGER DEFAULT 0,
        skipped INTEGER DEFAULT 0,
        failed INTEGER DEFAULT 0,
        pages_fetched INTEGER DEFAULT 0,
        pages_failed INTEGER DEFAULT 0,
        duration_seconds REAL DEFAULT 0
    );

    CREATE INDEX IF NOT EXISTS idx_snapshots_changed ON product_snapshots(last_changed);
    CREATE INDEX IF NOT EXISTS idx_history_timestamp ON run_history(timestamp);
"""


async def get_db(path: str) -> aiosqlite.Connection:
    """Open the database. Failure here is fatal for a run."""
    try:
        db = await aiosqlite.connect(path)
        db.row_factory = aiosqlite.Row
        if path != ":memory:":
            await db.execute("PRAGMA journal_mode=WAL")
    except aiosqlite.Error as e:
        raise StoreConnectionError(f"cannot open database at {path}: {e}") from e
    return db


async def init_db(db: aiosqlite.Connection):
    """Create tables if they don't exist."""
    try:
        await db.executescript(SCHEMA)
        await db.commit()
    except aiosqlite.Error as e:
        raise StoreConnectionError(f"cannot initialize schema: {e}") from e


async def connect(path: str) -> aiosqlite.Connection:
    """Open the database and make sure the schema exists."""
    db = await get_db(path)
    try:
        await init_db(db)
    except StoreConnectionError:
        await db.close()
        raise
    logger.info("Database ready at %s", path)
    return db
