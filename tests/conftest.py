"""
Shared test fixtures and configuration for pytest.
"""

import logging
import os
import sys
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


logger = logging.getLogger(__name__)


# ============================================================================
# Environment detection
# ============================================================================

def _sqlserver_password():
    return os.environ.get("VECTOR_SQLSERVER_PASSWORD") or os.environ.get("MSSQL_SA_PASSWORD")


def is_sqlserver_available() -> bool:
    """Check if SQL Server is available for testing."""
    password = _sqlserver_password()
    if not password:
        return False

    try:
        import pyodbc

        host = os.environ.get("VECTOR_SQLSERVER_HOST", "localhost")
        port = int(os.environ.get("VECTOR_SQLSERVER_PORT", "1433"))
        database = os.environ.get("VECTOR_SQLSERVER_DATABASE", "Recipes")
        username = os.environ.get("VECTOR_SQLSERVER_USER", "sa")
        driver = os.environ.get("VECTOR_SQLSERVER_DRIVER", "ODBC Driver 18 for SQL Server")

        conn_str = (
            f"Driver={{{driver}}};"
            f"Server={host},{port};"
            f"Database={database};"
            f"UID={username};"
            f"PWD={password};"
            f"TrustServerCertificate=yes"
        )

        conn = pyodbc.connect(conn_str, timeout=5)
        conn.close()
        return True

    except Exception as e:
        logger.debug(f"SQL Server not available: {e}")
        return False


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires SQL Server)")


def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests if SQL Server is not available."""
    if not any("integration" in item.keywords for item in items):
        return
    if is_sqlserver_available():
        return

    skip_sqlserver = pytest.mark.skip(
        reason="SQL Server not available (set MSSQL_SA_PASSWORD and ensure SQL Server is running)"
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_sqlserver)


# ============================================================================
# Fixtures
# ============================================================================

# Minimal stand-ins for the recipe application's tables, used by scoped search
MEMBERSHIP_DDL = (
    "CREATE TABLE recipe (id TEXT PRIMARY KEY, deleted_at TEXT)",
    "CREATE TABLE recipe_version (id TEXT PRIMARY KEY, recipe_id TEXT NOT NULL, deleted_at TEXT)",
    "CREATE TABLE project (id INTEGER PRIMARY KEY, short_id TEXT NOT NULL, deleted_at TEXT)",
    "CREATE TABLE recipe_version_project (version_id TEXT NOT NULL, project_id INTEGER NOT NULL)",
)


class MembershipFixture:
    """Writes rows into the SQLite membership tables of a store."""

    def __init__(self, store):
        self.store = store
        self._next_project_id = 1
        self._projects = {}

    def _execute(self, sql, params=()):
        self.store.conn.execute(sql, params)

    def add_recipe(self, recipe_id, deleted=False):
        self._execute(
            "INSERT INTO recipe (id, deleted_at) VALUES (?, ?)",
            (recipe_id, "2026-01-01T00:00:00" if deleted else None),
        )

    def add_version(self, version_id, recipe_id, deleted=False):
        self._execute(
            "INSERT INTO recipe_version (id, recipe_id, deleted_at) VALUES (?, ?, ?)",
            (version_id, recipe_id, "2026-01-01T00:00:00" if deleted else None),
        )

    def add_project(self, short_id, deleted=False):
        project_id = self._next_project_id
        self._next_project_id += 1
        self._projects[short_id] = project_id
        self._execute(
            "INSERT INTO project (id, short_id, deleted_at) VALUES (?, ?, ?)",
            (project_id, short_id, "2026-01-01T00:00:00" if deleted else None),
        )

    def link(self, version_id, project_short_id):
        self._execute(
            "INSERT INTO recipe_version_project (version_id, project_id) VALUES (?, ?)",
            (version_id, self._projects[project_short_id]),
        )


@pytest.fixture
def sqlite_store():
    """In-memory SQLite vector store with 3-dimensional embeddings."""
    from vecdocs.store.sqlite_store import SqliteVectorDocumentStore

    store = SqliteVectorDocumentStore(":memory:", dimensions=3)
    for ddl in MEMBERSHIP_DDL:
        store.conn.execute(ddl)

    yield store
    store.close()


@pytest.fixture
def membership(sqlite_store):
    """Helper for populating the membership tables of sqlite_store."""
    return MembershipFixture(sqlite_store)


@pytest.fixture(scope="session")
def sqlserver_config() -> dict:
    """Session-scoped fixture providing SQL Server connection configuration."""
    return {
        "host": os.environ.get("VECTOR_SQLSERVER_HOST", "localhost"),
        "port": int(os.environ.get("VECTOR_SQLSERVER_PORT", "1433")),
        "database": os.environ.get("VECTOR_SQLSERVER_DATABASE", "Recipes"),
        "username": os.environ.get("VECTOR_SQLSERVER_USER", "sa"),
        "password": _sqlserver_password(),
        "driver": os.environ.get("VECTOR_SQLSERVER_DRIVER", "ODBC Driver 18 for SQL Server"),
    }


@pytest.fixture(scope="function")
def test_schema_name() -> str:
    """Fixture providing a unique test schema name."""
    import uuid
    return f"test_{uuid.uuid4().hex[:8]}"
