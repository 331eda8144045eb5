"""Cost entry repository for database operations."""

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

import aiosqlite

from src.domain.models.cost import CostEntry


class CostEntryRepository:
    """Repository for the append-only cost ledger table."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)

    async def save(self, entry: CostEntry) -> int:
        """Append a cost entry.

        Args:
            entry: CostEntry to persist

        Returns:
            Row id of the inserted entry
        """
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """INSERT INTO cost_entries (
                    timestamp, service, environment,
                    input_tokens, output_tokens, cost, request_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry.timestamp.isoformat(),
                    entry.service,
                    entry.environment,
                    entry.input_tokens,
                    entry.output_tokens,
                    entry.cost,
                    entry.request_id,
                ),
            )
            await db.commit()
            return cursor.lastrowid

    async def list_since(self, since: Optional[datetime] = None) -> List[CostEntry]:
        """Entries at or after ``since`` (all entries if None), oldest first.

        Args:
            since: Lower bound on timestamp

        Returns:
            List of CostEntry objects ordered by timestamp
        """
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            if since is None:
                cursor = await db.execute(
                    "SELECT * FROM cost_entries ORDER BY timestamp ASC, id ASC"
                )
            else:
                cursor = await db.execute(
                    """SELECT * FROM cost_entries
                       WHERE timestamp >= ?
                       ORDER BY timestamp ASC, id ASC""",
                    (since.isoformat(),),
                )
            rows = await cursor.fetchall()
            return [self._row_to_entry(row) for row in rows]

    async def count(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM cost_entries")
            row = await cursor.fetchone()
            return row[0] if row else 0

    def _row_to_entry(self, row: aiosqlite.Row) -> CostEntry:
        """Convert a database row to a CostEntry model."""
        return CostEntry(
            timestamp=datetime.fromisoformat(row["timestamp"]),
            service=row["service"],
            environment=row["environment"],
            input_tokens=row["input_tokens"],
            output_tokens=row["output_tokens"],
            cost=row["cost"],
            request_id=row["request_id"],
        )
