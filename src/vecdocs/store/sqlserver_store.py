"""
SQL Server-based vector document store.

This is the default backend. It relies on the native VECTOR(n) column type
and VECTOR_DISTANCE('cosine', ...) available in SQL Server 2025, so
filtering, ordering and limiting all happen in the database.
"""

import logging
import threading
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

try:
    import pyodbc
except ImportError:
    pyodbc = None

from ..contracts.models import (
    SearchHit,
    VectorDocument,
    VectorStats,
    parse_vector,
    serialize_vector,
)
from ..core.exceptions import PersistenceError, VersionRecipeMismatchError
from .base import VectorDocumentStore
from .scoping import MembershipTables, build_scope_clause, require_identifier


logger = logging.getLogger(__name__)


TABLE_NAME = "vector_document"

# Embedding is cast to text so any driver/TDS version can read it back
_DOCUMENT_COLUMNS = (
    "id, title, short_id, version_id, recipe_id, "
    "CAST(embedding AS NVARCHAR(MAX)) AS embedding, "
    "is_current, created_at, updated_at, deleted_at"
)


class SqlServerVectorDocumentStore(VectorDocumentStore):
    """
    SQL Server-based implementation of the vector document store.

    Features:
    - Native VECTOR(n) storage and cosine distance in SQL
    - Filtered unique indexes backing the live-version and
      current-per-recipe invariants
    - Upsert in one transaction, serialized per recipe with sp_getapplock
    - Thread-local connections for concurrent callers
    """

    backend_name = "sqlserver"

    def __init__(
        self,
        dimensions: int,
        connection_string: Optional[str] = None,
        host: str = "localhost",
        port: int = 1433,
        database: str = "Recipes",
        username: str = "sa",
        password: Optional[str] = None,
        driver: str = "ODBC Driver 18 for SQL Server",
        schema: str = "vector",
        membership: Optional[MembershipTables] = None,
        query_timeout_seconds: int = 30,
        auto_init: bool = True,
        trust_server_certificate: bool = True,
    ):
        """
        Initialize the SQL Server vector document store.

        Args:
            dimensions: Embedding length; fixes the VECTOR(n) column type
            connection_string: Full ODBC connection string (if provided, other params ignored)
            host: SQL Server host
            port: SQL Server port
            database: Database name
            username: Database username
            password: Database password
            driver: ODBC driver name
            schema: Schema holding the vector_document table (default: 'vector')
            membership: Names of the project scoping tables
            query_timeout_seconds: Per-statement timeout enforced by the driver (0 = none)
            auto_init: Whether to create schema and tables automatically
            trust_server_certificate: Whether to trust self-signed certificates (for local Docker)
        """
        if pyodbc is None:
            raise ImportError(
                "pyodbc is required for SqlServerVectorDocumentStore. "
                "Install with: pip install pyodbc"
            )

        super().__init__(dimensions, membership)
        self.schema = require_identifier(schema, "schema name")
        self.query_timeout_seconds = query_timeout_seconds
        self.auto_init = auto_init

        if connection_string:
            self.connection_string = connection_string
        else:
            trust_cert = "yes" if trust_server_certificate else "no"
            self.connection_string = (
                f"Driver={{{driver}}};"
                f"Server={host},{port};"
                f"Database={database};"
                f"UID={username};"
                f"PWD={password};"
                f"TrustServerCertificate={trust_cert}"
            )

        self._thread_local = threading.local()
        self._connections = []
        self._connections_lock = threading.Lock()
        self._connect()

        if auto_init:
            self.init_schema()

    @property
    def table(self) -> str:
        return f"[{self.schema}].[{TABLE_NAME}]"

    @property
    def vector_type(self) -> str:
        return f"VECTOR({self.dimensions})"

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._get_conn()
            logger.debug(f"Connected to SQL Server vector store (schema: {self.schema})")
        except pyodbc.Error as e:
            logger.error(f"Failed to connect to SQL Server: {e}")
            raise PersistenceError(f"Failed to connect: {e}", operation="connect") from e

    def _get_conn(self):
        """Get (or create) a thread-local connection for safe concurrent use."""
        conn = getattr(self._thread_local, "conn", None)
        if conn is None:
            conn = pyodbc.connect(self.connection_string, autocommit=True)
            if self.query_timeout_seconds:
                conn.timeout = self.query_timeout_seconds
            self._thread_local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _rollback(self, cursor) -> None:
        try:
            cursor.execute("IF @@TRANCOUNT > 0 ROLLBACK TRANSACTION")
        except pyodbc.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def _execute(self, operation: str, query: str, params: Sequence[Any] = ()):
        """Run a single autocommit statement, returning the cursor."""
        cursor = self._get_conn().cursor()
        try:
            if params:
                cursor.execute(query, tuple(params))
            else:
                cursor.execute(query)
        except pyodbc.Error as e:
            logger.error(f"{operation} failed: {e}")
            raise PersistenceError(f"{operation} failed: {e}", operation=operation) from e
        return cursor

    def init_schema(self) -> None:
        """Initialize database schema, table and indexes."""
        # Schema name is validated in __init__; CREATE SCHEMA cannot be
        # parameterized, hence EXEC.
        self._execute("init_schema", f"""
            IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = ?)
            BEGIN
                EXEC('CREATE SCHEMA [{self.schema}]')
            END
        """, (self.schema,))

        self._execute("init_schema", f"""
            IF OBJECT_ID(N'{self.table}', N'U') IS NULL
            BEGIN
                CREATE TABLE {self.table} (
                    id BIGINT IDENTITY(1,1) NOT NULL PRIMARY KEY,
                    title NVARCHAR(500) NOT NULL,
                    short_id NVARCHAR(100) NOT NULL,
                    version_id NVARCHAR(100) NOT NULL,
                    recipe_id NVARCHAR(100) NOT NULL,
                    embedding {self.vector_type} NOT NULL,
                    is_current BIT NOT NULL DEFAULT 1,
                    created_at DATETIME2 NOT NULL,
                    updated_at DATETIME2 NOT NULL,
                    deleted_at DATETIME2 NULL
                )
            END
        """)

        indexes = (
            ("UX_vector_document_live_version", "UNIQUE", "(version_id)",
             "WHERE deleted_at IS NULL"),
            ("UX_vector_document_current_recipe", "UNIQUE", "(recipe_id)",
             "WHERE deleted_at IS NULL AND is_current = 1"),
            ("IX_vector_document_recipe", "", "(recipe_id, deleted_at)", ""),
        )
        for name, unique, columns, where in indexes:
            self._execute("init_schema", f"""
                IF NOT EXISTS (SELECT * FROM sys.indexes
                               WHERE name = ? AND object_id = OBJECT_ID(N'{self.table}'))
                BEGIN
                    CREATE {unique} INDEX {name} ON {self.table} {columns} {where}
                END
            """, (name,))

        logger.info(f"Vector document schema ready: {self.table} ({self.vector_type})")

    def _row_to_document(self, row) -> VectorDocument:
        return VectorDocument(
            id=int(row[0]),
            title=row[1],
            short_id=row[2],
            version_id=row[3],
            recipe_id=row[4],
            embedding=parse_vector(row[5]) if row[5] else [],
            is_current=bool(row[6]),
            created_at=row[7] if isinstance(row[7], datetime) else datetime.fromisoformat(str(row[7])),
            updated_at=row[8] if isinstance(row[8], datetime) else datetime.fromisoformat(str(row[8])),
            deleted_at=(row[9] if isinstance(row[9], datetime)
                        else (datetime.fromisoformat(str(row[9])) if row[9] else None)),
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
        vector_text = serialize_vector(embedding)
        cursor = self._get_conn().cursor()

        try:
            cursor.execute("SET XACT_ABORT ON; BEGIN TRANSACTION;")

            # Serialize writers of the same recipe until commit/rollback
            lock_timeout_ms = int(self.query_timeout_seconds * 1000) if self.query_timeout_seconds else -1
            cursor.execute("""
                SET NOCOUNT ON;
                DECLARE @result INT;
                EXEC @result = sp_getapplock
                    @Resource = ?, @LockMode = 'Exclusive',
                    @LockOwner = 'Transaction', @LockTimeout = ?;
                SELECT @result;
            """, (f"vecdocs:{self.schema}:{recipe_id}", lock_timeout_ms))
            lock_result = cursor.fetchone()[0]
            if lock_result < 0:
                raise PersistenceError(
                    f"Could not lock recipe {recipe_id} (sp_getapplock returned {lock_result})",
                    operation="upsert",
                )

            cursor.execute(f"""
                SELECT id, recipe_id FROM {self.table} WITH (UPDLOCK, HOLDLOCK)
                WHERE version_id = ? AND deleted_at IS NULL
            """, (version_id,))
            existing = cursor.fetchone()
            if existing and existing[1] != recipe_id:
                raise VersionRecipeMismatchError(version_id, existing[1], recipe_id)

            if is_current:
                cursor.execute(f"""
                    UPDATE {self.table}
                    SET is_current = 0, updated_at = SYSUTCDATETIME()
                    WHERE recipe_id = ? AND deleted_at IS NULL
                """, (recipe_id,))

            if existing:
                document_id = int(existing[0])
                cursor.execute(f"""
                    UPDATE {self.table}
                    SET title = ?,
                        short_id = ?,
                        embedding = CAST(? AS {self.vector_type}),
                        is_current = ?,
                        updated_at = SYSUTCDATETIME()
                    WHERE id = ?
                """, (title, short_id, vector_text, is_current, document_id))
                logger.debug(f"Updated vector document {document_id} for version {version_id}")
            else:
                cursor.execute(f"""
                    SET NOCOUNT ON;
                    INSERT INTO {self.table}
                        (title, short_id, version_id, recipe_id, embedding,
                         is_current, created_at, updated_at)
                    OUTPUT INSERTED.id
                    VALUES (?, ?, ?, ?, CAST(? AS {self.vector_type}), ?,
                            SYSUTCDATETIME(), SYSUTCDATETIME());
                """, (title, short_id, version_id, recipe_id, vector_text, is_current))
                document_id = int(cursor.fetchone()[0])
                logger.debug(f"Inserted vector document {document_id} for version {version_id}")

            cursor.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM {self.table} WHERE id = ?",
                (document_id,)
            )
            row = cursor.fetchone()

            cursor.execute("COMMIT TRANSACTION")

        except pyodbc.Error as e:
            self._rollback(cursor)
            logger.error(f"upsert failed, transaction rolled back: {e}")
            raise PersistenceError(f"upsert failed: {e}", operation="upsert") from e
        except Exception:
            self._rollback(cursor)
            raise

        return self._row_to_document(row)

    def mark_recipe_not_current(self, recipe_id: str) -> int:
        cursor = self._execute("mark_recipe_not_current", f"""
            UPDATE {self.table}
            SET is_current = 0, updated_at = SYSUTCDATETIME()
            WHERE recipe_id = ? AND deleted_at IS NULL
        """, (recipe_id,))
        count = max(cursor.rowcount, 0)

        logger.debug(f"Marked {count} documents not current for recipe {recipe_id}")
        return count

    def soft_delete(self, version_id: str) -> bool:
        cursor = self._execute("soft_delete", f"""
            UPDATE {self.table}
            SET deleted_at = SYSUTCDATETIME(), updated_at = SYSUTCDATETIME()
            WHERE version_id = ? AND deleted_at IS NULL
        """, (version_id,))
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
        cursor = self._execute("get_current_for_recipe", f"""
            SELECT TOP 1 {_DOCUMENT_COLUMNS}
            FROM {self.table}
            WHERE recipe_id = ? AND is_current = 1 AND deleted_at IS NULL
        """, (recipe_id,))
        row = cursor.fetchone()
        return self._row_to_document(row) if row else None

    def get_by_version(self, version_id: str) -> Optional[VectorDocument]:
        cursor = self._execute("get_by_version", f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM {self.table}
            WHERE version_id = ? AND deleted_at IS NULL
        """, (version_id,))
        row = cursor.fetchone()
        return self._row_to_document(row) if row else None

    def list_for_recipe(
        self,
        recipe_id: str,
        include_deleted: bool = False,
    ) -> List[VectorDocument]:
        query = f"SELECT {_DOCUMENT_COLUMNS} FROM {self.table} WHERE recipe_id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        query += " ORDER BY id"

        cursor = self._execute("list_for_recipe", query, (recipe_id,))
        return [self._row_to_document(row) for row in cursor.fetchall()]

    def _qualify(self, table: str) -> str:
        return f"[{self.membership.schema}].[{table}]"

    def _search(
        self,
        query_embedding: List[float],
        limit: int,
        threshold: float,
        project_ids: Tuple[str, ...],
    ) -> List[SearchHit]:
        scope = ""
        params: list = [serialize_vector(query_embedding), limit, threshold]

        if project_ids:
            clause, _ = build_scope_clause(self.membership, len(project_ids), self._qualify)
            scope = f"AND {clause}"
            params.extend(project_ids)

        query = f"""
            SET NOCOUNT ON;
            DECLARE @query {self.vector_type} = CAST(? AS {self.vector_type});
            SELECT TOP (?)
                d.id, d.title, d.short_id, d.version_id, d.recipe_id,
                1.0 - VECTOR_DISTANCE('cosine', d.embedding, @query) AS similarity
            FROM {self.table} d
            WHERE d.deleted_at IS NULL
              AND d.is_current = 1
              AND 1.0 - VECTOR_DISTANCE('cosine', d.embedding, @query) > ?
              {scope}
            ORDER BY VECTOR_DISTANCE('cosine', d.embedding, @query), d.id;
        """

        cursor = self._execute("similarity_search", query, params)
        return [
            SearchHit(
                id=int(row[0]),
                title=row[1],
                short_id=row[2],
                version_id=row[3],
                recipe_id=row[4],
                similarity=float(row[5]),
            )
            for row in cursor.fetchall()
        ]

    def get_stats(self) -> VectorStats:
        cursor = self._execute("get_stats", f"""
            SELECT
                COUNT(*) AS total_count,
                COALESCE(SUM(CASE WHEN is_current = 1 AND deleted_at IS NULL THEN 1 ELSE 0 END), 0) AS current_count,
                COALESCE(SUM(CASE WHEN deleted_at IS NOT NULL THEN 1 ELSE 0 END), 0) AS deleted_count
            FROM {self.table}
        """)
        row = cursor.fetchone()
        return VectorStats(total=int(row[0]), current=int(row[1]), deleted=int(row[2]))

    def close(self) -> None:
        """Close all connections opened by this store."""
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except pyodbc.Error as e:
                    logger.warning(f"Error closing connection: {e}")
            self._connections = []
        self._thread_local = threading.local()
