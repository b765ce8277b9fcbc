"""
Full-text index - SQLite FTS5 index of file names, paths and text.

Every upserted file is findable by name (even files that are never
embedded, such as images); relevant documents also have their
extracted text indexed.
"""

import logging
import re
import sqlite3
import threading
import time
from pathlib import Path
from typing import List, Optional

from .config import get_config, SyncConfig
from .errors import StoreError
from .models import SearchHit


logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


class FullTextIndex:
    """
    FTS5 index keyed by path, with last-modified time and size.

    Safe to call from worker threads: one connection, serialized by a lock.
    """

    def __init__(self, config: SyncConfig | None = None, db_path: Path | None = None):
        self.config = config or get_config()
        self.db_path = Path(db_path) if db_path else self.config.fulltext_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS files (
                    path TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    last_modified INTEGER NOT NULL,
                    size INTEGER NOT NULL,
                    indexed_at REAL NOT NULL
                );

                CREATE VIRTUAL TABLE IF NOT EXISTS files_fts USING fts5(
                    path UNINDEXED,
                    name,
                    content
                );
            """)
            self._conn.commit()
        return self._conn

    def add(
        self,
        path: str,
        last_modified: int,
        size: int,
        text: Optional[str] = None,
    ) -> None:
        """
        Add or replace a file in the index.

        `text=None` refreshes name and metadata and keeps any content already
        indexed for the path; pass "" to clear it.

        Raises:
            StoreError: On backend failure
        """
        name = Path(path).name
        # Index the stem separately so "report" matches "report_2024.txt"
        searchable_name = f"{name} {Path(path).stem}"

        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    if text is None:
                        row = conn.execute(
                            "SELECT content FROM files_fts WHERE path = ?", (path,)
                        ).fetchone()
                        text = row[0] if row else ""
                    conn.execute("DELETE FROM files_fts WHERE path = ?", (path,))
                    conn.execute(
                        """
                        INSERT INTO files (path, name, last_modified, size, indexed_at)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(path) DO UPDATE SET
                            name = excluded.name,
                            last_modified = excluded.last_modified,
                            size = excluded.size,
                            indexed_at = excluded.indexed_at
                        """,
                        (path, name, last_modified, size, time.time()),
                    )
                    conn.execute(
                        "INSERT INTO files_fts (path, name, content) VALUES (?, ?, ?)",
                        (path, searchable_name, text),
                    )
            except sqlite3.Error as e:
                raise StoreError(f"Full-text add failed for {path}: {e}") from e

    def remove(self, path: str) -> bool:
        """
        Remove a file from the index.

        Returns:
            True if the path was indexed

        Raises:
            StoreError: On backend failure
        """
        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    cursor = conn.execute("DELETE FROM files WHERE path = ?", (path,))
                    conn.execute("DELETE FROM files_fts WHERE path = ?", (path,))
            except sqlite3.Error as e:
                raise StoreError(f"Full-text remove failed for {path}: {e}") from e
        return cursor.rowcount > 0

    def get(self, path: str) -> Optional[dict]:
        """Stored metadata for a path, or None."""
        with self._lock:
            row = self._get_connection().execute(
                "SELECT path, name, last_modified, size FROM files WHERE path = ?", (path,)
            ).fetchone()
        return dict(row) if row else None

    def _sanitize_query(self, query: str) -> str:
        """Quote each token so FTS5 operators in user input are literal."""
        tokens = _TOKEN_PATTERN.findall(query)
        return " ".join(f'"{t}"' for t in tokens)

    def search(self, query: str, limit: int = 20) -> List[SearchHit]:
        """Search names and content, best match first (bm25)."""
        match = self._sanitize_query(query)
        if not match:
            return []

        with self._lock:
            try:
                rows = self._get_connection().execute(
                    """
                    SELECT path, bm25(files_fts) AS score
                    FROM files_fts
                    WHERE files_fts MATCH ?
                    ORDER BY score
                    LIMIT ?
                    """,
                    (match, limit),
                ).fetchall()
            except sqlite3.OperationalError as e:
                logger.warning(f"Full-text query failed for {query!r}: {e}")
                return []

        # bm25 is lower-is-better; flip so higher is better like vector hits
        return [SearchHit(path=row["path"], score=-row["score"]) for row in rows]

    def close(self):
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
