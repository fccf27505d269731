"""
SQLite storage for the intercept proxy's durable cache buckets.

A bucket is a named request -> response table. Buckets survive restarts and
are only ever removed whole, when a new cache version is activated.
"""
import sqlite3
import json
import logging
from pathlib import Path
from typing import Optional, List
from datetime import datetime
from contextlib import contextmanager

from ..transport import Request, Response

logger = logging.getLogger("proxy.buckets")


SCHEMA = """
CREATE TABLE IF NOT EXISTS buckets (
    name TEXT PRIMARY KEY,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS entries (
    bucket TEXT NOT NULL,
    request_key TEXT NOT NULL,
    status INTEGER NOT NULL,
    reason TEXT,
    headers TEXT NOT NULL,
    body BLOB NOT NULL,
    stored_at TEXT NOT NULL,
    PRIMARY KEY (bucket, request_key)
);

CREATE INDEX IF NOT EXISTS idx_entries_bucket ON entries(bucket);
"""


class DurableCacheStore:
    """
    SQLite-based store of named cache buckets.

    Handles:
    - Opening (creating) buckets by name
    - Listing and deleting whole buckets
    - Request/response reads and writes inside a bucket
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database with schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a database connection."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # =========================================================================
    # Buckets
    # =========================================================================

    def open(self, name: str) -> "CacheBucket":
        """Open a bucket, creating it if needed."""
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO buckets (name, created_at) VALUES (?, ?)",
                (name, datetime.utcnow().isoformat() + "Z"),
            )
            conn.commit()
        return CacheBucket(self, name)

    def has(self, name: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT 1 FROM buckets WHERE name = ?", (name,))
            return cursor.fetchone() is not None

    def keys(self) -> List[str]:
        """Names of every existing bucket."""
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT name FROM buckets ORDER BY name")
            return [row["name"] for row in cursor.fetchall()]

    def delete(self, name: str) -> bool:
        """
        Delete a bucket and everything in it.

        Returns:
            True if the bucket existed
        """
        with self._get_connection() as conn:
            conn.execute("DELETE FROM entries WHERE bucket = ?", (name,))
            cursor = conn.execute("DELETE FROM buckets WHERE name = ?", (name,))
            conn.commit()
            return cursor.rowcount > 0

    # =========================================================================
    # Entries
    # =========================================================================

    def _match(self, bucket: str, request_key: str) -> Optional[Response]:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT status, reason, headers, body FROM entries
                WHERE bucket = ? AND request_key = ?
                """,
                (bucket, request_key),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return Response(
            status=row["status"],
            headers=json.loads(row["headers"]),
            body=bytes(row["body"]),
            reason=row["reason"] or "",
        )

    def _put(self, bucket: str, request_key: str, response: Response) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO entries (
                    bucket, request_key, status, reason, headers, body, stored_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    bucket,
                    request_key,
                    response.status,
                    response.reason,
                    json.dumps(response.headers),
                    sqlite3.Binary(response.body),
                    datetime.utcnow().isoformat() + "Z",
                ),
            )
            conn.commit()

    def _delete_entry(self, bucket: str, request_key: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM entries WHERE bucket = ? AND request_key = ?",
                (bucket, request_key),
            )
            conn.commit()
            return cursor.rowcount > 0

    def _entry_keys(self, bucket: str) -> List[str]:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT request_key FROM entries WHERE bucket = ? ORDER BY request_key",
                (bucket,),
            )
            return [row["request_key"] for row in cursor.fetchall()]


class CacheBucket:
    """Handle on one named bucket."""

    def __init__(self, store: DurableCacheStore, name: str):
        self._store = store
        self.name = name

    def match(self, request: Request) -> Optional[Response]:
        return self._store._match(self.name, request.cache_key)

    def put(self, request: Request, response: Response) -> None:
        self._store._put(self.name, request.cache_key, response)

    def delete(self, request: Request) -> bool:
        return self._store._delete_entry(self.name, request.cache_key)

    def keys(self) -> List[str]:
        return self._store._entry_keys(self.name)

    def __len__(self) -> int:
        return len(self.keys())
