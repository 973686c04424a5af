"""
Warning Log — append-only record of non-fatal diagnostics raised during a run.

Behavioral Contract:
- Append-only. No warning is ever modified or deleted.
- Every warning carries the tick it was raised at, a category and its source
- Queryable by category, by source and by tick range
"""

import sqlite3
from typing import Dict, List, Optional

from pydantic import BaseModel


class WarningRecord(BaseModel):
    id: int
    tick: int
    category: str
    source: Optional[str] = None
    message: str
    created_at: str


class WarningLog:
    """
    Append-only warning store.
    SQLite, in memory by default; point it at a file to keep runs around.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS warnings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tick INTEGER NOT NULL,
                category TEXT NOT NULL,
                source TEXT,
                message TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_warnings_category ON warnings(category)
        """)
        self._conn.commit()

    def append(
        self,
        tick: int,
        category: str,
        message: str,
        source: Optional[str] = None,
    ) -> int:
        cursor = self._conn.execute(
            "INSERT INTO warnings (tick, category, source, message) VALUES (?, ?, ?, ?)",
            (tick, category, source, message),
        )
        self._conn.commit()
        return cursor.lastrowid

    def query_by_category(self, category: str) -> List[WarningRecord]:
        rows = self._conn.execute(
            "SELECT * FROM warnings WHERE category = ? ORDER BY id", (category,)
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def query_by_source(self, source: str) -> List[WarningRecord]:
        rows = self._conn.execute(
            "SELECT * FROM warnings WHERE source = ? ORDER BY id", (source,)
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def query_by_ticks(self, start: int, end: int) -> List[WarningRecord]:
        rows = self._conn.execute(
            "SELECT * FROM warnings WHERE tick >= ? AND tick <= ? ORDER BY id",
            (start, end),
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def recent(self, limit: int = 20) -> List[WarningRecord]:
        rows = self._conn.execute(
            "SELECT * FROM warnings ORDER BY id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._row_to_record(r) for r in reversed(rows)]

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM warnings").fetchone()[0]

    def counts_by_category(self) -> Dict[str, int]:
        rows = self._conn.execute(
            "SELECT category, COUNT(*) AS n FROM warnings GROUP BY category"
        ).fetchall()
        return {row["category"]: row["n"] for row in rows}

    def close(self) -> None:
        self._conn.close()

    def _row_to_record(self, row: sqlite3.Row) -> WarningRecord:
        return WarningRecord(
            id=row["id"],
            tick=row["tick"],
            category=row["category"],
            source=row["source"],
            message=row["message"],
            created_at=row["created_at"],
        )
