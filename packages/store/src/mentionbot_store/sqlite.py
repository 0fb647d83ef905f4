"""SQLiteStore: indexed durable dedup markers.

Compared with JsonFileStore:
- Point lookups by message id are indexed instead of a full JSON parse per
  poll.
- Expiry is a single DELETE, so sweeps stay cheap as the table grows.

Schema:
  processed: one row per message id; re-marking upserts the timestamp.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from mentionbot_store.base import BaseStore
from mentionbot_store.models import StoreStats

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS processed (
    message_id    TEXT PRIMARY KEY,
    timestamp_ms  INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_processed_ts ON processed (timestamp_ms);
"""


class SQLiteStore(BaseStore):
    """Stores processed markers in a local SQLite database file.

    The database path defaults to `.state/processed.db`. Configure via
    .mentionbot.yml: `store: sqlite` and `store_path: /path/to/processed.db`.
    Unlike JsonFileStore, expired rows are only physically removed by sweep();
    reads simply ignore them.
    """

    def __init__(self, db_path: str = ".state/processed.db", max_age_ms: int | None = None, clock=None):
        super().__init__(max_age_ms=max_age_ms, clock=clock)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def is_processed(self, message_id: str) -> bool:
        row = self._conn.execute(
            "SELECT timestamp_ms FROM processed WHERE message_id=?",
            (message_id,),
        ).fetchone()
        if row is None:
            return False
        return self.now_ms() - row[0] <= self.max_age_ms

    def mark_processed(self, message_id: str) -> None:
        self._conn.execute(
            """
            INSERT INTO processed (message_id, timestamp_ms) VALUES (?, ?)
            ON CONFLICT(message_id) DO UPDATE SET timestamp_ms=excluded.timestamp_ms
            """,
            (message_id, self.now_ms()),
        )
        self._conn.commit()

    def sweep(self, max_age_ms: int | None = None) -> int:
        threshold = self.max_age_ms if max_age_ms is None else max_age_ms
        cursor = self._conn.execute(
            "DELETE FROM processed WHERE ? - timestamp_ms > ?",
            (self.now_ms(), threshold),
        )
        self._conn.commit()
        if cursor.rowcount:
            logger.info("Swept %d expired marker(s)", cursor.rowcount)
        return cursor.rowcount

    def stats(self) -> StoreStats:
        total = self._conn.execute("SELECT COUNT(*) FROM processed").fetchone()[0]
        unexpired = self._conn.execute(
            "SELECT COUNT(*) FROM processed WHERE ? - timestamp_ms <= ?",
            (self.now_ms(), self.max_age_ms),
        ).fetchone()[0]
        return StoreStats(total=total, unexpired=unexpired)

    def close(self) -> None:
        self._conn.close()
