from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from typing import Dict, Iterable, List, Optional


logger = logging.getLogger(__name__)


class KeyValueStore:
    """Durable string key/value store shared by every dashboard process.

    Values are read straight from SQLite on every ``get`` so a write made by
    another process (a second dashboard logging out, for instance) is seen
    immediately.
    """

    CREATE_TABLE_SQL = """
      CREATE TABLE IF NOT EXISTS kv (
        key TEXT PRIMARY KEY,
        value TEXT
      )
    """

    def __init__(self, path: str):
        self.path = path
        if path != ":memory:":
            directory = os.path.dirname(os.path.abspath(path))
            if directory and not os.path.isdir(directory):
                os.makedirs(directory, exist_ok=True)
        # fetches run on executor threads; sqlite3 connections are guarded by the lock below
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self._lock = threading.Lock()
        if path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute(self.CREATE_TABLE_SQL)
        self.conn.commit()

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            cur = self.conn.execute("SELECT value FROM kv WHERE key=?", (key,))
            row = cur.fetchone()
        if row is None or row[0] is None:
            return default
        return row[0]

    def set(self, key: str, value: Optional[str]) -> None:
        self.set_many({key: value})

    def set_many(self, values: Dict[str, Optional[str]]) -> None:
        """Write several keys in one transaction."""
        with self._lock:
            with self.conn:
                self.conn.executemany(
                    "INSERT OR REPLACE INTO kv(key, value) VALUES (?, ?)",
                    list(values.items()),
                )

    def delete(self, *keys: str) -> None:
        self.delete_many(keys)

    def delete_many(self, keys: Iterable[str]) -> None:
        with self._lock:
            with self.conn:
                self.conn.executemany("DELETE FROM kv WHERE key=?", [(k,) for k in keys])

    def keys(self) -> List[str]:
        with self._lock:
            return [r[0] for r in self.conn.execute("SELECT key FROM kv ORDER BY key")]

    def get_json(self, key: str, default: object = None) -> object:
        raw = self.get(key)
        if raw is None or raw == "":
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed JSON under store key %r", key)
            return default

    def close(self) -> None:
        with self._lock:
            self.conn.close()
