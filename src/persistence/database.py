"""
SQLite storage for the cost history (aiosqlite).

Only cost entries are persisted; sessions live in memory. The schema in
schema.sql is idempotent, so init_database runs on every startup.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import aiosqlite
import structlog

from src.core.config import settings

log = structlog.get_logger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema.sql"


def _resolve(db_path: Optional[Path]) -> Path:
    return Path(db_path or settings.database_path)


async def init_database(db_path: Optional[Path] = None) -> None:
    """Create the database file (and parent directory) and apply the schema.

    Raises:
        FileNotFoundError: schema.sql is missing from the package
    """
    path = _resolve(db_path)
    if not SCHEMA_FILE.exists():
        log.error("schema_file_not_found", path=str(SCHEMA_FILE))
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_FILE}")

    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(path) as db:
        # WAL lets /costs reads run alongside ledger writes
        await db.execute("PRAGMA journal_mode = WAL")
        await db.executescript(SCHEMA_FILE.read_text())
        await db.commit()

    log.info("database_initialized", path=str(path))


async def check_database_health(db_path: Optional[Path] = None) -> Dict[str, Any]:
    """Report reachability, integrity and stored cost entry count."""
    path = _resolve(db_path)
    try:
        async with aiosqlite.connect(path) as db:
            async with db.execute("SELECT COUNT(*) FROM cost_entries") as cursor:
                count_row = await cursor.fetchone()
            async with db.execute("PRAGMA integrity_check") as cursor:
                integrity_row = await cursor.fetchone()
    except aiosqlite.Error as e:
        log.error("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "cost_entry_count": count_row[0] if count_row else 0,
        "integrity": integrity_row[0] if integrity_row else "unknown",
        "path": str(path),
    }
