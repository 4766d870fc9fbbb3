"""
Integration tests for SqlServerVectorDocumentStore.

These tests verify against a real SQL Server 2025 instance that:
1. The schema, VECTOR column and filtered unique indexes are created
2. Upsert keeps one current document per recipe, including under concurrency
3. VECTOR_DISTANCE search filters, orders and limits as expected
"""

import math
from concurrent.futures import ThreadPoolExecutor

import pytest


def unit_at(similarity):
    return [similarity, math.sqrt(1.0 - similarity ** 2), 0.0]


QUERY = [1.0, 0.0, 0.0]


@pytest.fixture
def vector_store(sqlserver_config, test_schema_name):
    """Store in a throwaway schema, dropped after the test."""
    from vecdocs.store.sqlserver_store import SqlServerVectorDocumentStore

    store = SqlServerVectorDocumentStore(
        dimensions=3,
        host=sqlserver_config["host"],
        port=sqlserver_config["port"],
        database=sqlserver_config["database"],
        username=sqlserver_config["username"],
        password=sqlserver_config["password"],
        driver=sqlserver_config["driver"],
        schema=test_schema_name,
    )

    yield store

    cursor = store._get_conn().cursor()
    cursor.execute(f"DROP TABLE IF EXISTS {store.table}")
    cursor.execute(f"DROP SCHEMA IF EXISTS [{store.schema}]")
    store.close()


@pytest.mark.integration
class TestSchema:
    """Tests for the created table."""

    def test_embedding_column_is_vector(self, vector_store):
        cursor = vector_store._get_conn().cursor()
        cursor.execute("""
            SELECT TYPE_NAME(c.user_type_id)
            FROM sys.columns c
            WHERE c.object_id = OBJECT_ID(?) AND c.name = 'embedding'
        """, (f"{vector_store.schema}.vector_document",))

        assert cursor.fetchone()[0].lower() == "vector"

    def test_filtered_unique_indexes(self, vector_store):
        cursor = vector_store._get_conn().cursor()
        cursor.execute("""
            SELECT name, filter_definition
            FROM sys.indexes
            WHERE object_id = OBJECT_ID(?) AND is_unique = 1 AND has_filter = 1
        """, (f"{vector_store.schema}.vector_document",))

        names = {row[0] for row in cursor.fetchall()}
        assert names == {"UX_vector_document_live_version", "UX_vector_document_current_recipe"}

    def test_init_schema_is_repeatable(self, vector_store):
        vector_store.init_schema()


@pytest.mark.integration
class TestUpsert:
    """Tests for upsert against SQL Server."""

    def test_new_version_supersedes_previous(self, vector_store):
        vector_store.upsert("Soup v1", "soup", [1.0, 0.0, 0.0], "v1", "r1")
        vector_store.upsert("Soup v2", "soup", [0.0, 1.0, 0.0], "v2", "r1")

        assert vector_store.get_current_for_recipe("r1").version_id == "v2"
        assert vector_store.get_by_version("v1").is_current is False

    def test_embedding_round_trips(self, vector_store):
        doc = vector_store.upsert("Soup", "soup", [0.25, -0.5, 1.0], "v1", "r1")

        assert doc.embedding == pytest.approx([0.25, -0.5, 1.0])

    def test_concurrent_writers_keep_one_current(self, vector_store):
        def write(i):
            return vector_store.upsert(f"Soup v{i}", "soup", [1.0, float(i), 0.0], f"v{i}", "r1")

        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(write, range(12)))

        documents = vector_store.list_for_recipe("r1")
        assert len(documents) == 12
        assert sum(1 for d in documents if d.is_current) == 1

    def test_version_kept_on_its_recipe(self, vector_store):
        from vecdocs.core.exceptions import VersionRecipeMismatchError

        vector_store.upsert("Soup v1", "soup", [1.0, 0.0, 0.0], "v1", "r1", is_current=False)
        vector_store.upsert("Soup v2", "soup", [0.0, 1.0, 0.0], "v2", "r1")

        with pytest.raises(VersionRecipeMismatchError):
            vector_store.upsert("Stew", "stew", [0.0, 0.0, 1.0], "v1", "r2")

        assert vector_store.get_current_for_recipe("r1").version_id == "v2"

    def test_soft_delete_twice(self, vector_store):
        vector_store.upsert("Soup", "soup", [1.0, 0.0, 0.0], "v1", "r1")

        assert vector_store.soft_delete("v1") is True
        assert vector_store.soft_delete("v1") is False
        assert vector_store.get_stats().deleted == 1


@pytest.mark.integration
class TestSimilaritySearch:
    """Tests for VECTOR_DISTANCE search."""

    def test_threshold_and_order(self, vector_store):
        vector_store.upsert("V1", "a", unit_at(0.9), "v1", "r1")
        vector_store.upsert("V2", "b", unit_at(0.5), "v2", "r2")
        vector_store.upsert("V3", "c", unit_at(0.2), "v3", "r3")

        hits = vector_store.similarity_search(QUERY, limit=10, threshold=0.3)

        assert [h.version_id for h in hits] == ["v1", "v2"]
        assert hits[0].similarity == pytest.approx(0.9, abs=1e-4)

    def test_deleted_excluded(self, vector_store):
        vector_store.upsert("Perfect", "a", [1.0, 0.0, 0.0], "v1", "r1")
        vector_store.soft_delete("v1")

        assert vector_store.similarity_search(QUERY, threshold=-1.0) == []
