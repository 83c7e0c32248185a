"""SQLite-backed cache for catalog detail lookups."""

from __future__ import annotations

import json
import os
import sqlite3
import time
from pathlib import Path

import structlog

log = structlog.get_logger()

DEFAULT_TTL_DAYS = 7


def cache_key(title: str) -> str:
    return " ".join(title.lower().split())


class BookCache:
    """Cache raw catalog volume info in a local SQLite database, keyed by title."""

    def __init__(self, db_path: Path | None = None, ttl_days: float | None = None):
        if db_path is None:
            cache_dir = Path(os.environ.get("CACHE_DIR", ".cache"))
            cache_dir.mkdir(parents=True, exist_ok=True)
            db_path = cache_dir / "bookbrief.db"

        if ttl_days is None:
            ttl_days = float(os.environ.get("CACHE_TTL_DAYS", DEFAULT_TTL_DAYS))

        self.db_path = db_path
        self.ttl_seconds = ttl_days * 86400
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.execute(
            """CREATE TABLE IF NOT EXISTS volumes (
                query TEXT PRIMARY KEY,
                volume TEXT,
                cached_at REAL
            )"""
        )
        self._conn.commit()

    def get(self, title: str) -> dict | None:
        """Return the cached volume info for a title, or None on miss/expiry."""
        key = cache_key(title)
        row = self._conn.execute(
            "SELECT volume, cached_at FROM volumes WHERE query = ?",
            (key,),
        ).fetchone()

        if row is None:
            return None

        volume_json, cached_at = row

        if time.time() - cached_at > self.ttl_seconds:
            self._conn.execute("DELETE FROM volumes WHERE query = ?", (key,))
            self._conn.commit()
            log.debug("cache_expired", query=key)
            return None

        log.debug("cache_hit", query=key)
        return json.loads(volume_json)

    def put(self, title: str, volume: dict) -> None:
        """Store a volume info payload for a title."""
        key = cache_key(title)
        self._conn.execute(
            "INSERT OR REPLACE INTO volumes (query, volume, cached_at) VALUES (?, ?, ?)",
            (key, json.dumps(volume), time.time()),
        )
        self._conn.commit()
        log.debug("cache_store", query=key)

    def close(self) -> None:
        self._conn.close()
