"""
Integration tests for the pipeline against PostgreSQL (testcontainers).
"""

from decimal import Decimal

import pytest

from retail_conform.batch.pipeline import BatchPipeline
from retail_conform.core.errors import TableRebuildError
from retail_conform.reporting import build_report
from retail_conform.settings import PipelineSettings
from retail_conform.warehouse.schema_mgmt import SchemaManager
from retail_conform.warehouse.table_store import PostgresTableStore


@pytest.fixture
def warehouse(db_pool, rule_set) -> PostgresTableStore:
    """Empty conformed schema behind a PostgresTableStore"""
    SchemaManager(db_pool).create_schema(rule_set.datasets)
    return PostgresTableStore(db_pool)


@pytest.fixture
def pipeline(warehouse, rule_set) -> BatchPipeline:
    return BatchPipeline(warehouse, rule_set=rule_set, settings=PipelineSettings())


@pytest.mark.integration
class TestPostgresWarehouse:
    """Integration tests for the PostgreSQL table store"""

    def test_schema_is_idempotent(self, db_pool, rule_set, warehouse):
        """Test the schema can be created twice"""
        SchemaManager(db_pool).create_schema(rule_set.datasets)

        assert warehouse.read_table("dim_product") == []

    def test_full_run(self, pipeline, warehouse, retail_batches):
        """Test a run writes dimensions, facts and the key map"""
        pipeline.run(retail_batches)

        products = warehouse.read_table("dim_product")
        assert sorted((row["product_sk"], row["product_id"]) for row in products) == [(1, 501), (2, 502)]

        sales = warehouse.read_table("fact_sales_items")
        assert len(sales) == 3
        assert sum(row["line_revenue"] for row in sales) == Decimal("329.70")

        clean = warehouse.read_table("clean_products")
        loss_maker = [row for row in clean if row["data"]["product_id"] == 502][0]
        assert loss_maker["flags"] == ["NEGATIVE_AMOUNT"]

        assert len(warehouse.read_table("surrogate_key_map")) == 4

    def test_rerun_keeps_tables_identical(self, pipeline, warehouse, retail_batches):
        """Test rebuilding twice yields the same rows"""
        pipeline.run(retail_batches)
        first = sorted(warehouse.read_table("fact_sales_items"), key=lambda row: row["sales_item_sk"])

        pipeline.run(retail_batches)
        second = sorted(warehouse.read_table("fact_sales_items"), key=lambda row: row["sales_item_sk"])

        assert first == second

    def test_grain_index_enforced(self, pipeline, warehouse, retail_batches):
        """Test the database rejects a duplicate grain and rolls back"""
        pipeline.run(retail_batches)
        row = {
            key: value for key, value in warehouse.read_table("fact_sales_items")[0].items()
            if key != "sales_item_sk"
        }

        with pytest.raises(TableRebuildError):
            warehouse.replace_table("fact_sales_items", [row, dict(row)])

        assert len(warehouse.read_table("fact_sales_items")) == 3

    def test_report_from_database(self, pipeline, warehouse, retail_batches):
        """Test reports read back from PostgreSQL"""
        pipeline.run(retail_batches)

        kpis = build_report(warehouse, "kpi_overview")

        assert kpis["total_revenue"] == Decimal("329.70")
        assert kpis["units_sold"] == 4
