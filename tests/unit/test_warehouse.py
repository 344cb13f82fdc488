"""
Unit tests for warehouse storage (table stores and schema management).
"""

from unittest.mock import MagicMock

import psycopg
import pytest

from retail_conform.core.errors import TableRebuildError
from retail_conform.dimensional import SurrogateKeyRegistry
from retail_conform.warehouse.schema_mgmt import CORE_DDL, SchemaManager, clean_table_name
from retail_conform.warehouse.table_store import InMemoryTableStore, PostgresTableStore


@pytest.fixture
def mock_pool():
    """
    Connection pool double whose connection and cursor are MagicMocks

    Returns:
        Tuple of (pool, connection, cursor)
    """
    pool = MagicMock()
    conn = MagicMock()
    cur = MagicMock()
    pool.get_connection.return_value.__enter__.return_value = conn
    conn.cursor.return_value.__enter__.return_value = cur
    return pool, conn, cur


class TestInMemoryTableStore:
    """Tests for InMemoryTableStore"""

    def test_replace_table(self):
        """Test a rebuild replaces the previous content"""
        store = InMemoryTableStore()
        store.replace_table("dim_store", [{"store_sk": 1}, {"store_sk": 2}])

        written = store.replace_table("dim_store", [{"store_sk": 3}])

        assert written == 1
        assert store.read_table("dim_store") == [{"store_sk": 3}]

    def test_rows_are_copied(self):
        """Test callers cannot mutate stored rows"""
        store = InMemoryTableStore()
        rows = [{"store_sk": 1}]
        store.replace_table("dim_store", rows)

        rows[0]["store_sk"] = 99
        store.read_table("dim_store")[0]["store_sk"] = 42

        assert store.read_table("dim_store") == [{"store_sk": 1}]

    def test_missing_table_is_empty(self):
        """Test reading a table that was never written"""
        assert InMemoryTableStore().read_table("dim_product") == []

    def test_key_registry_roundtrip(self):
        """Test the key registry persists through the store"""
        store = InMemoryTableStore()
        registry = SurrogateKeyRegistry()
        registry.assign("dim_product", [(501,), (502,)])

        store.save_key_registry(registry)
        loaded = store.load_key_registry()

        assert loaded.lookup("dim_product", (502,)) == 2
        assert store.table_names() == ["surrogate_key_map"]


class TestPostgresTableStore:
    """Tests for PostgresTableStore with a mocked pool"""

    def test_truncate_then_insert(self, mock_pool):
        """Test a rebuild truncates, inserts every row and commits"""
        pool, conn, cur = mock_pool
        store = PostgresTableStore(pool)

        written = store.replace_table("dim_store", [
            {"store_sk": 1, "store_name": "Downtown"},
            {"store_sk": 2, "store_name": "Mall"},
        ])

        assert written == 2
        cur.execute.assert_called_once()
        params = cur.executemany.call_args[0][1]
        assert params == [(1, "Downtown"), (2, "Mall")]
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()

    def test_empty_rows_only_truncate(self, mock_pool):
        """Test rebuilding with no rows empties the table"""
        pool, conn, cur = mock_pool

        written = PostgresTableStore(pool).replace_table("fact_returns", [])

        assert written == 0
        cur.execute.assert_called_once()
        cur.executemany.assert_not_called()
        conn.commit.assert_called_once()

    def test_failure_rolls_back(self, mock_pool):
        """Test a database error rolls back and raises TableRebuildError"""
        pool, conn, cur = mock_pool
        cur.executemany.side_effect = psycopg.Error("value too long for type character varying(50)")

        with pytest.raises(TableRebuildError) as exc_info:
            PostgresTableStore(pool).replace_table("dim_store", [{"store_sk": 1}])

        assert exc_info.value.table == "dim_store"
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_read_table(self, mock_pool):
        """Test reads go through the pool query helper"""
        pool, _, _ = mock_pool
        pool.execute_query.return_value = [{"store_sk": 1}]

        assert PostgresTableStore(pool).read_table("dim_store") == [{"store_sk": 1}]
        pool.execute_query.assert_called_once()


class TestSchemaManager:
    """Tests for SchemaManager DDL"""

    def test_clean_table_name(self):
        """Test clean-layer table naming"""
        assert clean_table_name("pos_items") == "clean_pos_items"

    def test_statements_per_dataset(self, mock_pool):
        """Test each dataset gets a clean table and an index"""
        pool, _, _ = mock_pool
        manager = SchemaManager(pool)

        statements = manager.statements(["stores", "products"])

        assert len(statements) == 4 + len(CORE_DDL)

    def test_core_tables_declared(self):
        """Test the dimensional tables and grain indexes are part of the DDL"""
        ddl = "\n".join(CORE_DDL)

        for table in ("surrogate_key_map", "dim_date", "dim_product", "dim_store",
                      "fact_pos_transactions", "fact_ecom_orders", "fact_sales_items",
                      "fact_returns", "fact_inventory_snapshots", "fact_quarantine"):
            assert f"CREATE TABLE IF NOT EXISTS {table}" in ddl
        assert "ux_fact_sales_items_grain" in ddl

    def test_create_schema_single_transaction(self, mock_pool):
        """Test every statement runs before a single commit"""
        pool, conn, cur = mock_pool

        executed = SchemaManager(pool).create_schema(["stores"])

        assert executed == 2 + len(CORE_DDL)
        assert cur.execute.call_count == executed
        conn.commit.assert_called_once()
