"""
SQLite key-value backend.
Single portable file. Each key is one row holding a JSON document.

sqlite3 is blocking, so every call is pushed off the event loop with
asyncio.to_thread; a lock keeps writes from two callers from interleaving.
"""

import asyncio
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from .base import KeyValueBackend

logger = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SQLiteBackend(KeyValueBackend):
    """Thread-safe SQLite key-value store."""

    def __init__(self, path: str = "./data/switchboard.db"):
        self.db_path = Path(path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(CREATE_TABLES)
        logger.info("SQLite backend initialized at %s", self.db_path)

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _get_sync(self, keys: list[str]) -> dict:
        if not keys:
            return {}
        placeholders = ",".join("?" for _ in keys)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT key, value FROM kv WHERE key IN ({placeholders})",
                list(keys),
            ).fetchall()
        result = {}
        for row in rows:
            try:
                result[row["key"]] = json.loads(row["value"])
            except json.JSONDecodeError as e:
                logger.warning("Skipping corrupt value for key '%s': %s", row["key"], e)
        return result

    def _set_sync(self, items: dict) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock, self._connect() as conn:
            for key, value in items.items():
                conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, json.dumps(value, ensure_ascii=False), now),
                )
        logger.debug("Stored %d key(s): %s", len(items), ", ".join(items))

    async def get(self, keys: list[str]) -> dict:
        return await asyncio.to_thread(self._get_sync, list(keys))

    async def set(self, items: dict) -> None:
        await asyncio.to_thread(self._set_sync, dict(items))

    def keys(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [r["key"] for r in rows]
