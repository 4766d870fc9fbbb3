"""
SQLite-based vector document store.

SQLite has no vector type, so embeddings are stored as JSON text and cosine
distance is computed in Python (vecdocs.similarity) with the same
filter/order/limit semantics as the SQL Server backend. Intended for local
development and tests; use SqlServerVectorDocumentStore for production.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from ..contracts.models import (
    SearchHit,
    VectorDocument,
    VectorStats,
    parse_vector,
    serialize_vector,
)
from ..core.exceptions import (
    DimensionMismatchError,
    PersistenceError,
    VersionRecipeMismatchError,
)
from ..similarity import rank_candidates
from .base import VectorDocumentStore
from .scoping import MembershipTables, build_scope_clause


logger = logging.getLogger(__name__)


MEMORY_PATH = ":memory:"

_DOCUMENT_COLUMNS = (
    "id, title, short_id, version_id, recipe_id, embedding, "
    "is_current, created_at, updated_at, deleted_at"
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteVectorDocumentStore(VectorDocumentStore):
    """
    SQLite-based implementation of the vector document store.

    One connection is shared by all threads; a store-level lock serializes
    statements on it, and writes run inside BEGIN IMMEDIATE transactions so
    other processes using the same file are serialized by SQLite itself.
    """

    backend_name = "sqlite"

    def __init__(
        self,
        db_path: Union[str, Path],
        dimensions: int,
        membership: Optional[MembershipTables] = None,
        timeout_seconds: float = 30.0,
        auto_init: bool = True,
    ):
        """
        Initialize the SQLite vector document store.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
            dimensions: Embedding length for every document
            membership: Names of the project scoping tables
            timeout_seconds: How long to wait on a locked database
            auto_init: Whether to create tables automatically
        """
        super().__init__(dimensions, membership)
        self.db_path = str(db_path)
        self.timeout_seconds = timeout_seconds
        self._lock = threading.RLock()
        self.conn: Optional[sqlite3.Connection] = None
        self._connect()

        if auto_init:
            self.init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != MEMORY_PATH:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            # isolation_level=None: transactions are opened explicitly
            self.conn = sqlite3.connect(
                self.db_path,
                timeout=self.timeout_seconds,
                check_same_thread=False,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to open SQLite vector store {self.db_path}: {e}")
            raise PersistenceError(f"Failed to connect: {e}", operation="connect") from e
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to SQLite vector store: {self.db_path}")

    def _rollback(self) -> None:
        if self.conn is not None and self.conn.in_transaction:
            self.conn.execute("ROLLBACK")

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Cursor]:
        """Run statements in one write transaction, mapping errors to PersistenceError."""
        with self._lock:
            cursor = self.conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
                yield cursor
                cursor.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                logger.error(f"{operation} failed, transaction rolled back: {e}")
                raise PersistenceError(f"{operation} failed: {e}", operation=operation) from e
            except Exception:
                self._rollback()
                raise

    @contextmanager
    def _reading(self, operation: str) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                yield self.conn.cursor()
            except sqlite3.Error as e:
                logger.error(f"{operation} failed: {e}")
                raise PersistenceError(f"{operation} failed: {e}", operation=operation) from e

    def init_schema(self) -> None:
        """Initialize database schema."""
        with self._transaction("init_schema") as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS vector_document (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    short_id TEXT NOT NULL,
                    version_id TEXT NOT NULL,
                    recipe_id TEXT NOT NULL,
                    embedding TEXT NOT NULL,
                    is_current INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    deleted_at TEXT
                )
            """)

            # At most one live row per version
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS ux_vector_document_live_version
                ON vector_document (version_id)
                WHERE deleted_at IS NULL
            """)

            # At most one live current row per recipe
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS ux_vector_document_current_recipe
                ON vector_document (recipe_id)
                WHERE deleted_at IS NULL AND is_current = 1
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS ix_vector_document_recipe
                ON vector_document (recipe_id, deleted_at)
            """)

        logger.debug("Initialized vector document schema")

    def _row_to_document(self, row: sqlite3.Row) -> VectorDocument:
        return VectorDocument(
            id=row["id"],
            title=row["title"],
            short_id=row["short_id"],
            version_id=row["version_id"],
            recipe_id=row["recipe_id"],
            embedding=parse_vector(row["embedding"]),
            is_current=bool(row["is_current"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            deleted_at=datetime.fromisoformat(row["deleted_at"]) if row["deleted_at"] else None,
        )

    # =========================================================================
    # Writes
    # =========================================================================

    def _upsert(
        self,
        title: str,
        short_id: str,
        embedding: List[float],
        version_id: str,
        recipe_id: str,
        is_current: bool,
    ) -> VectorDocument:
        now = _utc_now()
        vector_text = serialize_vector(embedding)

        with self._transaction("upsert") as cursor:
            cursor.execute("""
                SELECT id, recipe_id FROM vector_document
                WHERE version_id = ? AND deleted_at IS NULL
            """, (version_id,))
            existing = cursor.fetchone()
            if existing and existing["recipe_id"] != recipe_id:
                raise VersionRecipeMismatchError(version_id, existing["recipe_id"], recipe_id)

            if is_current:
                cursor.execute("""
                    UPDATE vector_document
                    SET is_current = 0, updated_at = ?
                    WHERE recipe_id = ? AND deleted_at IS NULL
                """, (now, recipe_id))

            if existing:
                document_id = existing["id"]
                cursor.execute("""
                    UPDATE vector_document
                    SET title = ?, short_id = ?, embedding = ?, is_current = ?, updated_at = ?
                    WHERE id = ?
                """, (title, short_id, vector_text, int(is_current), now, document_id))
                logger.debug(f"Updated vector document {document_id} for version {version_id}")
            else:
                cursor.execute("""
                    INSERT INTO vector_document (
                        title, short_id, version_id, recipe_id, embedding,
                        is_current, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (title, short_id, version_id, recipe_id, vector_text,
                      int(is_current), now, now))
                document_id = cursor.lastrowid
                logger.debug(f"Inserted vector document {document_id} for version {version_id}")

            cursor.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM vector_document WHERE id = ?",
                (document_id,)
            )
            row = cursor.fetchone()

        return self._row_to_document(row)

    def mark_recipe_not_current(self, recipe_id: str) -> int:
        with self._transaction("mark_recipe_not_current") as cursor:
            cursor.execute("""
                UPDATE vector_document
                SET is_current = 0, updated_at = ?
                WHERE recipe_id = ? AND deleted_at IS NULL
            """, (_utc_now(), recipe_id))
            count = cursor.rowcount

        logger.debug(f"Marked {count} documents not current for recipe {recipe_id}")
        return count

    def soft_delete(self, version_id: str) -> bool:
        now = _utc_now()
        with self._transaction("soft_delete") as cursor:
            cursor.execute("""
                UPDATE vector_document
                SET deleted_at = ?, updated_at = ?
                WHERE version_id = ? AND deleted_at IS NULL
            """, (now, now, version_id))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Soft-deleted vector document for version {version_id}")
        else:
            logger.debug(f"No live vector document for version {version_id}")
        return deleted

    # =========================================================================
    # Reads
    # =========================================================================

    def get_current_for_recipe(self, recipe_id: str) -> Optional[VectorDocument]:
        with self._reading("get_current_for_recipe") as cursor:
            cursor.execute(f"""
                SELECT {_DOCUMENT_COLUMNS} FROM vector_document
                WHERE recipe_id = ? AND is_current = 1 AND deleted_at IS NULL
                LIMIT 1
            """, (recipe_id,))
            row = cursor.fetchone()

        return self._row_to_document(row) if row else None

    def get_by_version(self, version_id: str) -> Optional[VectorDocument]:
        with self._reading("get_by_version") as cursor:
            cursor.execute(f"""
                SELECT {_DOCUMENT_COLUMNS} FROM vector_document
                WHERE version_id = ? AND deleted_at IS NULL
            """, (version_id,))
            row = cursor.fetchone()

        return self._row_to_document(row) if row else None

    def list_for_recipe(
        self,
        recipe_id: str,
        include_deleted: bool = False,
    ) -> List[VectorDocument]:
        query = f"SELECT {_DOCUMENT_COLUMNS} FROM vector_document WHERE recipe_id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        query += " ORDER BY id"

        with self._reading("list_for_recipe") as cursor:
            cursor.execute(query, (recipe_id,))
            rows = cursor.fetchall()

        return [self._row_to_document(row) for row in rows]

    def _qualify(self, table: str) -> str:
        # Attached databases are not used; the schema name does not apply
        return f'"{table}"'

    def _search(
        self,
        query_embedding: List[float],
        limit: int,
        threshold: float,
        project_ids: Tuple[str, ...],
    ) -> List[SearchHit]:
        query = """
            SELECT d.id, d.title, d.short_id, d.version_id, d.recipe_id, d.embedding
            FROM vector_document d
            WHERE d.deleted_at IS NULL AND d.is_current = 1
        """
        params: list = []

        if project_ids:
            clause, _ = build_scope_clause(self.membership, len(project_ids), self._qualify)
            query += f" AND {clause}"
            params.extend(project_ids)

        with self._reading("similarity_search") as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()

        candidates = []
        for row in rows:
            vector = parse_vector(row["embedding"])
            if len(vector) != self.dimensions:
                raise DimensionMismatchError(
                    self.dimensions, len(vector),
                    what=f"stored embedding of document {row['id']}",
                )
            candidates.append({
                "id": row["id"],
                "title": row["title"],
                "short_id": row["short_id"],
                "version_id": row["version_id"],
                "recipe_id": row["recipe_id"],
                "embedding": vector,
            })

        return rank_candidates(query_embedding, candidates, limit=limit, threshold=threshold)

    def get_stats(self) -> VectorStats:
        with self._reading("get_stats") as cursor:
            cursor.execute("""
                SELECT
                    COUNT(*) AS total_count,
                    COALESCE(SUM(CASE WHEN is_current = 1 AND deleted_at IS NULL THEN 1 ELSE 0 END), 0) AS current_count,
                    COALESCE(SUM(CASE WHEN deleted_at IS NOT NULL THEN 1 ELSE 0 END), 0) AS deleted_count
                FROM vector_document
            """)
            row = cursor.fetchone()

        return VectorStats(
            total=row["total_count"],
            current=row["current_count"],
            deleted=row["deleted_count"],
        )

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
                logger.debug("Closed SQLite vector store")
