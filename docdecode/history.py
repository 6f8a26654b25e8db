"""
History Store for DocDecode
Append-only log of past analyses in a single SQLite table.
"""

import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import List, Optional, Union

from docdecode.errors import HistoryError, HistoryWriteError
from docdecode.schema import HistoryRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
    original_input TEXT,
    analysis_json TEXT
)
"""


class HistoryStore:
    """
    One-table SQLite store.

    A connection is opened per operation, so the store can be shared across
    Streamlit script threads.
    """

    def __init__(self, db_path: Union[str, Path] = "docdecode.db"):
        self._db_path = str(db_path)
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(_SCHEMA)
        except sqlite3.Error as exc:
            raise HistoryError(f"Could not initialise history at {self._db_path}: {exc}") from exc

    # ------------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    # ------------------------------------------------------------------
    @staticmethod
    def _record(row: sqlite3.Row) -> HistoryRecord:
        return HistoryRecord(
            id=row["id"],
            timestamp=str(row["timestamp"]),
            original_input=row["original_input"] or "",
            analysis_json=row["analysis_json"] or "",
        )

    # ------------------------------------------------------------------
    def list(self) -> List[HistoryRecord]:
        """All records, newest first."""
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT * FROM history ORDER BY timestamp DESC, id DESC"
                ).fetchall()
        except sqlite3.Error as exc:
            raise HistoryError(f"Failed to fetch history: {exc}") from exc
        return [self._record(r) for r in rows]

    # ------------------------------------------------------------------
    def get(self, record_id: int) -> Optional[HistoryRecord]:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT * FROM history WHERE id = ?", (record_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise HistoryError(f"Failed to fetch history item {record_id}: {exc}") from exc
        return self._record(row) if row is not None else None

    # ------------------------------------------------------------------
    def append(self, original_input: str, analysis_json: str) -> int:
        """Insert a record and return its id."""
        try:
            with closing(self._connect()) as conn, conn:
                cur = conn.execute(
                    "INSERT INTO history (original_input, analysis_json) VALUES (?, ?)",
                    (original_input, analysis_json),
                )
                record_id = cur.lastrowid
        except sqlite3.Error as exc:
            raise HistoryWriteError(f"Failed to save history: {exc}") from exc
        logger.info("History item %s saved.", record_id)
        return record_id

    # ------------------------------------------------------------------
    def remove(self, record_id: int) -> None:
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("DELETE FROM history WHERE id = ?", (record_id,))
        except sqlite3.Error as exc:
            raise HistoryWriteError(f"Failed to delete history item {record_id}: {exc}") from exc
        logger.info("History item %s deleted.", record_id)
