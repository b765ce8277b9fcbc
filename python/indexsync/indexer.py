"""
Indexer - SQLite-backed vector store.

One document row per path plus its ordered chunk embeddings. An upsert
replaces the document and all of its chunks inside one transaction, so
readers never see old and new chunks of the same path together.
"""

import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import List, Optional, Set

import numpy as np

from .config import get_config, SyncConfig
from .errors import RecordNotFoundError, StoreError
from .models import EmbeddingChunk, IndexedEntry, Language, SearchHit


logger = logging.getLogger(__name__)


def serialize_embedding(embedding: np.ndarray) -> bytes:
    """Convert embedding to bytes for storage."""
    return np.asarray(embedding, dtype=np.float32).tobytes()


def deserialize_embedding(data: bytes) -> np.ndarray:
    """Convert bytes back to embedding."""
    return np.frombuffer(data, dtype=np.float32)


class VectorStore:
    """
    Vector store keyed by file path.

    Safe to call from worker threads: one connection, serialized by a lock.
    """

    def __init__(self, config: SyncConfig | None = None, db_path: Path | None = None):
        self.config = config or get_config()
        self.db_path = Path(db_path) if db_path else self.config.db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = NORMAL")
            self._init_tables()
        return self._conn

    def _init_tables(self):
        """Create tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                path TEXT PRIMARY KEY,
                fingerprint TEXT NOT NULL,
                language TEXT,
                chunk_count INTEGER NOT NULL,
                last_updated REAL NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_documents_fingerprint ON documents(fingerprint);

            CREATE TABLE IF NOT EXISTS chunks (
                path TEXT NOT NULL,
                ordinal INTEGER NOT NULL,
                embedding BLOB NOT NULL,
                PRIMARY KEY (path, ordinal)
            );
        """)
        self._conn.commit()

    def upsert(
        self,
        path: str,
        fingerprint: str,
        vectors: List[EmbeddingChunk],
        language: Optional[Language] = None,
    ) -> None:
        """
        Replace the entry for `path` with the given fingerprint and vectors.

        Raises:
            StoreError: On backend failure (the previous entry is kept)
        """
        if not vectors:
            raise StoreError(f"Refusing to store {path} without vectors")

        now = time.time()
        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    conn.execute("DELETE FROM chunks WHERE path = ?", (path,))
                    conn.execute(
                        """
                        INSERT INTO documents (path, fingerprint, language, chunk_count, last_updated)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(path) DO UPDATE SET
                            fingerprint = excluded.fingerprint,
                            language = excluded.language,
                            chunk_count = excluded.chunk_count,
                            last_updated = excluded.last_updated
                        """,
                        (
                            path,
                            fingerprint,
                            language.value if language else None,
                            len(vectors),
                            now,
                        ),
                    )
                    conn.executemany(
                        "INSERT INTO chunks (path, ordinal, embedding) VALUES (?, ?, ?)",
                        [(path, c.ordinal, serialize_embedding(c.vector)) for c in vectors],
                    )
            except sqlite3.Error as e:
                raise StoreError(f"Upsert failed for {path}: {e}") from e

        logger.debug(f"Stored {len(vectors)} chunks for {path}")

    def delete(self, path: str) -> None:
        """
        Remove the entry for `path`.

        Raises:
            RecordNotFoundError: If no entry existed
            StoreError: On backend failure
        """
        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    cursor = conn.execute("DELETE FROM documents WHERE path = ?", (path,))
                    conn.execute("DELETE FROM chunks WHERE path = ?", (path,))
            except sqlite3.Error as e:
                raise StoreError(f"Delete failed for {path}: {e}") from e

        if cursor.rowcount == 0:
            raise RecordNotFoundError(path)

    def get(self, path: str) -> Optional[IndexedEntry]:
        """Load the entry for a path, or None."""
        with self._lock:
            conn = self._get_connection()
            row = conn.execute(
                "SELECT * FROM documents WHERE path = ?", (path,)
            ).fetchone()
            if row is None:
                return None
            chunk_rows = conn.execute(
                "SELECT ordinal, embedding FROM chunks WHERE path = ? ORDER BY ordinal",
                (path,),
            ).fetchall()

        return IndexedEntry(
            path=row["path"],
            fingerprint=row["fingerprint"],
            vectors=[
                EmbeddingChunk(ordinal=r["ordinal"], vector=deserialize_embedding(r["embedding"]))
                for r in chunk_rows
            ],
            last_updated=row["last_updated"],
            language=Language(row["language"]) if row["language"] else None,
        )

    def get_existing_paths(self) -> Set[str]:
        """Get all file paths currently in the store."""
        with self._lock:
            cursor = self._get_connection().execute("SELECT path FROM documents")
            return {row[0] for row in cursor.fetchall()}

    def get_fingerprint(self, path: str) -> Optional[str]:
        """Fingerprint stored for a path, or None if not indexed."""
        with self._lock:
            row = self._get_connection().execute(
                "SELECT fingerprint FROM documents WHERE path = ?", (path,)
            ).fetchone()
        return row[0] if row else None

    def search(self, query_vector: np.ndarray, limit: int = 10) -> List[SearchHit]:
        """
        Rank paths by the best cosine similarity of any of their chunks.

        Chunks whose dimension differs from the query (another model) are skipped.
        """
        query = np.asarray(query_vector, dtype=np.float32)
        norm = np.linalg.norm(query)
        if norm == 0:
            return []
        query = query / norm

        with self._lock:
            rows = self._get_connection().execute(
                "SELECT path, ordinal, embedding FROM chunks"
            ).fetchall()

        best: dict[str, SearchHit] = {}
        for row in rows:
            vector = deserialize_embedding(row["embedding"])
            if vector.shape != query.shape:
                continue
            vector_norm = np.linalg.norm(vector)
            if vector_norm == 0:
                continue
            score = float(np.dot(query, vector) / vector_norm)
            current = best.get(row["path"])
            if current is None or score > current.score:
                best[row["path"]] = SearchHit(row["path"], score, row["ordinal"])

        return sorted(best.values(), key=lambda h: h.score, reverse=True)[:limit]

    def close(self):
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
