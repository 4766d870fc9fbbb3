"""
Vector document store implementations.

The default backend is SQL Server (SqlServerVectorDocumentStore), using the
native VECTOR type. SQLite (SqliteVectorDocumentStore) computes cosine
distance in Python and is meant for local development and tests.

To select backend, set the VECTOR_DB_BACKEND environment variable or the
`backend` key of the YAML config:
    - VECTOR_DB_BACKEND=sqlserver (default)
    - VECTOR_DB_BACKEND=sqlite
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from ..core.exceptions import VectorStoreConfigError
from .base import VectorDocumentStore
from .scoping import MembershipTables

if TYPE_CHECKING:
    from ..config import VectorStoreConfig


logger = logging.getLogger(__name__)


# Lazy imports so the SQLite backend works without pyodbc
def _get_sqlite_store():
    from .sqlite_store import SqliteVectorDocumentStore
    return SqliteVectorDocumentStore


def _get_sqlserver_store():
    from .sqlserver_store import SqlServerVectorDocumentStore
    return SqlServerVectorDocumentStore


def create_vector_store(
    config: Optional["VectorStoreConfig"] = None,
    backend: Optional[str] = None,
    db_path: Optional[Union[str, Path]] = None,
    auto_init: bool = True,
) -> VectorDocumentStore:
    """
    Factory function to create the configured vector document store.

    Args:
        config: Loaded configuration (defaults to VectorStoreConfig() built
            from defaults plus environment variables)
        backend: Overrides config.backend ('sqlserver' or 'sqlite')
        db_path: Overrides the SQLite path
        auto_init: Auto-create schema/tables

    Returns:
        VectorDocumentStore instance

    Raises:
        VectorStoreConfigError: If the backend is unknown or misconfigured
        ImportError: If pyodbc is missing for the SQL Server backend
    """
    if config is None:
        from ..config import VectorStoreConfig
        config = VectorStoreConfig()

    backend = (backend or config.backend).lower()
    membership = config.get_membership_tables()

    if backend == "sqlite":
        sqlite_config = config.get_sqlite_config()
        path = db_path or sqlite_config.get("path")
        logger.info(f"Using SQLite vector store at {path}")

        SqliteVectorDocumentStore = _get_sqlite_store()
        return SqliteVectorDocumentStore(
            db_path=path,
            dimensions=config.dimensions,
            membership=membership,
            timeout_seconds=float(sqlite_config.get("timeout_seconds", 30.0)),
            auto_init=auto_init,
        )

    elif backend == "sqlserver":
        sql = config.get_sqlserver_config()
        if not sql.get("connection_string") and not sql.get("password"):
            raise VectorStoreConfigError(
                "SQL Server password not configured "
                "(set VECTOR_SQLSERVER_PASSWORD or MSSQL_SA_PASSWORD)"
            )

        SqlServerVectorDocumentStore = _get_sqlserver_store()
        return SqlServerVectorDocumentStore(
            dimensions=config.dimensions,
            connection_string=sql.get("connection_string"),
            host=sql.get("host", "localhost"),
            port=int(sql.get("port", 1433)),
            database=sql.get("database", "Recipes"),
            username=sql.get("username", "sa"),
            password=sql.get("password"),
            driver=sql.get("driver", "ODBC Driver 18 for SQL Server"),
            schema=sql.get("schema", "vector"),
            membership=membership,
            query_timeout_seconds=int(sql.get("query_timeout_seconds", 30)),
            auto_init=auto_init,
            trust_server_certificate=bool(sql.get("trust_server_certificate", True)),
        )

    raise VectorStoreConfigError(
        f"Unknown backend: {backend}. "
        "Supported backends: 'sqlserver' (default), 'sqlite'"
    )


__all__ = ["VectorDocumentStore", "MembershipTables", "create_vector_store"]
