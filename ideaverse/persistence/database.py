"""
SQLite database connection management.

Provides async database initialization and a connection helper.
Uses aiosqlite for async SQLite access.

Schema is defined in schema.sql (idempotent, no migrations).
"""

from pathlib import Path
from typing import Optional

import aiosqlite
import structlog

from ideaverse.core.config import settings

log = structlog.get_logger(__name__)

# Path to schema file
SCHEMA_FILE = Path(__file__).parent / "schema.sql"


async def init_database(db_path: Optional[Path] = None) -> None:
    """
    Initialize database from schema.sql.

    Args:
        db_path: Optional path to database file. Uses settings.database_path if not provided.

    Creates the database file if it doesn't exist. Existing databases are left
    intact (CREATE TABLE IF NOT EXISTS).
    """
    db_path = db_path or settings.database_path

    db_path.parent.mkdir(parents=True, exist_ok=True)

    log.info("initializing_database", path=str(db_path))

    if not SCHEMA_FILE.exists():
        log.error("schema_file_not_found", path=str(SCHEMA_FILE))
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_FILE}")

    async with aiosqlite.connect(db_path) as db:
        # WAL keeps reads unblocked while a write commits
        await db.execute("PRAGMA journal_mode = WAL")

        schema_sql = SCHEMA_FILE.read_text(encoding="utf-8")
        await db.executescript(schema_sql)
        await db.commit()

    log.info("database_initialized", path=str(db_path))


async def get_db_connection(db_path: Optional[Path] = None) -> aiosqlite.Connection:
    """
    Get a single database connection.

    Caller is responsible for closing the connection:

        db = await get_db_connection()
        try:
            # use db
        finally:
            await db.close()
    """
    db = await aiosqlite.connect(db_path or settings.database_path)
    db.row_factory = aiosqlite.Row
    return db
