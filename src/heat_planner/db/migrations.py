"""Database schema creation and version check."""

from __future__ import annotations

import logging

import aiosqlite

from heat_planner.db.models import SCHEMA_VERSION, TABLES

logger = logging.getLogger(__name__)


async def run_migrations(db: aiosqlite.Connection) -> int:
    """Create the schema on a fresh database and return the version found on disk.

    Raises RuntimeError for a database written by a different schema version.
    """
    found = await schema_version(db)

    if found == 0:
        logger.info("Creating database schema (version %d)", SCHEMA_VERSION)
        for statement in TABLES:
            await db.execute(statement)
        await db.execute(
            "INSERT OR REPLACE INTO schema_version (id, version) VALUES (1, ?)",
            (SCHEMA_VERSION,),
        )
        await db.commit()
    elif found != SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {found} is not supported (expected {SCHEMA_VERSION})"
        )
    else:
        logger.debug("Database schema is up to date (version %d)", found)
    return found


async def schema_version(db: aiosqlite.Connection) -> int:
    """Stored schema version; 0 for a database without one."""
    try:
        async with db.execute("SELECT version FROM schema_version WHERE id = 1") as cursor:
            row = await cursor.fetchone()
    except aiosqlite.OperationalError:
        return 0
    return row[0] if row else 0
