"""
Unit tests for the reporting views over a completed in-memory run.
"""

from datetime import date
from decimal import Decimal

import pytest

from retail_conform.batch.pipeline import BatchPipeline
from retail_conform.reporting import (
    REPORT_NAMES,
    build_report,
    data_quality_summary,
    inventory_at_risk,
    inventory_turnover,
    kpi_overview,
    returns_summary,
)
from retail_conform.settings import PipelineSettings
from retail_conform.warehouse.table_store import InMemoryTableStore


@pytest.fixture
def loaded_store(rule_set, retail_batches) -> InMemoryTableStore:
    """In-memory store holding a complete run over the sample extract"""
    store = InMemoryTableStore()
    BatchPipeline(store, rule_set=rule_set, settings=PipelineSettings()).run(retail_batches)
    return store


class TestRevenueReports:
    """Tests for revenue reports"""

    def test_revenue_summary(self, loaded_store):
        """Test revenue, units and margin per channel"""
        ecom, pos = build_report(loaded_store, "revenue_summary")

        assert ecom["source_system"] == "ECOM"
        assert ecom["total_revenue"] == Decimal("89.90")
        assert ecom["total_margin"] == Decimal("49.90")
        assert ecom["revenue_share_pct"] == Decimal("0.2727")

        assert pos["total_transactions"] == 2
        assert pos["total_units_sold"] == 3
        assert pos["total_revenue"] == Decimal("239.80")
        assert pos["total_margin"] == Decimal("89.80")

    def test_daily_revenue(self, loaded_store):
        """Test revenue per day and channel, in date order"""
        rows = build_report(loaded_store, "daily_revenue")

        assert [(row["full_date"], row["source_system"], row["daily_revenue"]) for row in rows] == [
            (date(2024, 3, 15), "ECOM", Decimal("89.90")),
            (date(2024, 3, 15), "POS", Decimal("179.80")),
            (date(2024, 3, 16), "POS", Decimal("60.00")),
        ]
        assert rows[0]["month_name"] == "March"

    def test_product_performance(self, loaded_store):
        """Test products ranked by revenue with loss makers at negative margin"""
        top, loss_maker = build_report(loaded_store, "product_performance")

        assert top["product_id"] == 501
        assert top["units_sold"] == 3
        assert top["total_revenue"] == Decimal("269.70")
        assert top["avg_selling_price"] == Decimal("89.90")
        assert top["gross_margin_pct"] == Decimal("0.5551")

        assert loss_maker["product_id"] == 502
        assert loss_maker["total_margin"] == Decimal("-10.00")
        assert loss_maker["gross_margin_pct"] == Decimal("-0.1667")

    def test_category_performance(self, loaded_store):
        """Test revenue, margin and revenue share per category"""
        footwear, outerwear = build_report(loaded_store, "category_performance")

        assert (footwear["category"], footwear["subcategory"]) == ("FOOTWEAR", "RUNNING")
        assert footwear["units_sold"] == 3
        assert footwear["category_revenue"] == Decimal("269.70")
        assert footwear["category_gross_margin_pct"] == Decimal("0.5551")
        assert footwear["category_revenue_share"] == Decimal("0.8180")

        assert outerwear["category"] == "OUTERWEAR"
        assert outerwear["category_gross_margin_pct"] == Decimal("-0.1667")
        assert outerwear["category_revenue_share"] == Decimal("0.1820")

    def test_store_performance(self, loaded_store):
        """Test in-store net revenue per store"""
        rows = build_report(loaded_store, "store_performance")

        assert [(row["store_id"], row["total_revenue"]) for row in rows] == [
            (1, Decimal("184.18")),
            (2, Decimal("64.80")),
        ]
        assert rows[0]["region"] == "WEST"


class TestKpiOverview:
    """Tests for the KPI snapshot"""

    def test_kpis(self, loaded_store):
        """Test the enterprise KPIs of the sample extract"""
        kpis = build_report(loaded_store, "kpi_overview")

        assert kpis == {
            "total_revenue": Decimal("329.70"),
            "avg_order_value": Decimal("109.90"),
            "units_sold": 4,
            "return_rate": Decimal("0.2500"),
            "inventory_turnover": Decimal("0.44"),
        }

    def test_empty_tables(self):
        """Test ratios are null rather than failing on empty input"""
        kpis = kpi_overview([], [], [])

        assert kpis["total_revenue"] == Decimal("0.00")
        assert kpis["avg_order_value"] is None
        assert kpis["return_rate"] is None
        assert kpis["inventory_turnover"] is None


class TestInventoryAndReturns:
    """Tests for inventory and returns reports"""

    def test_stock_out_reported(self, loaded_store):
        """Test only the out-of-stock position is at risk"""
        rows = build_report(loaded_store, "inventory_at_risk")

        assert len(rows) == 1
        assert rows[0]["store_id"] == 2
        assert rows[0]["product_id"] == 502
        assert rows[0]["is_stock_out"] is True
        assert rows[0]["is_below_safety_stock"] is True
        assert rows[0]["full_date"] == date(2024, 3, 15)

    def test_below_safety_stock_without_flag(self):
        """Test positions under safety stock are reported even when not flagged"""
        inventory = [{
            "product_sk": 1, "store_sk": 1, "date_sk": 20240315, "beginning_inventory": 9,
            "ending_inventory": 3, "safety_stock": 5, "stock_status": "LOW_STOCK",
            "inventory_value": Decimal("30.00"), "below_safety_stock": False,
        }]

        rows = inventory_at_risk(inventory, [], [], [])

        assert rows[0]["is_stock_out"] is False
        assert rows[0]["is_below_safety_stock"] is True
        assert rows[0]["store_id"] is None

    def test_inventory_turnover_per_product(self, loaded_store):
        """Test turnover per product, with no ratio for an empty shelf"""
        trail_shoe, rain_jacket = build_report(loaded_store, "inventory_turnover")

        assert trail_shoe["product_id"] == 501
        assert trail_shoe["total_units_sold"] == 3
        assert trail_shoe["avg_inventory_units"] == Decimal("18.00")
        assert trail_shoe["inventory_turnover_ratio"] == Decimal("0.17")

        assert rain_jacket["product_id"] == 502
        assert rain_jacket["avg_inventory_units"] == Decimal("0.00")
        assert rain_jacket["inventory_turnover_ratio"] is None

    def test_inventory_turnover_needs_sales_and_stock(self):
        """Test products without sales or without positions are left out"""
        products = [{"product_sk": 1, "product_id": 501}, {"product_sk": 2, "product_id": 502}]
        sales = [{"product_sk": 1, "quantity": 4}]
        inventory = [
            {"product_sk": 1, "ending_inventory": 6},
            {"product_sk": 1, "ending_inventory": 10},
            {"product_sk": 2, "ending_inventory": 5},
        ]

        rows = inventory_turnover(sales, inventory, products)

        assert rows == [{
            "product_id": 501,
            "product_name": None,
            "total_units_sold": 4,
            "avg_inventory_units": Decimal("8.00"),
            "inventory_turnover_ratio": Decimal("0.50"),
        }]

    def test_returns_summary(self, loaded_store):
        """Test refunds and return rate per product"""
        rows = build_report(loaded_store, "returns_summary")

        assert rows == [{
            "product_id": 501,
            "product_name": "Trail Shoe",
            "total_returns": 1,
            "units_returned": 1,
            "total_refund_amount": Decimal("89.90"),
            "return_rate": Decimal("0.3333"),
        }]

    def test_return_of_unsold_product(self):
        """Test a product without sales has no return rate"""
        rows = returns_summary(
            [{"product_sk": 7, "quantity_returned": 1, "refund_amount": Decimal("5.00")}],
            [],
            [{"product_sk": 7, "product_id": 70, "product_name": "Umbrella"}],
        )

        assert rows[0]["return_rate"] is None


class TestDataQuality:
    """Tests for the data quality summary"""

    def test_flag_counts_per_dataset(self, loaded_store):
        """Test flagged records are counted per dataset"""
        report = build_report(loaded_store, "data_quality", datasets=["products", "inventory_snapshots"])

        inventory, products = report["datasets"]
        assert inventory["dataset"] == "inventory_snapshots"
        assert inventory["flag_counts"] == {"BELOW_THRESHOLD": 1}
        assert products["flagged_records"] == 1
        assert products["flag_counts"] == {"NEGATIVE_AMOUNT": 1}
        assert report["quarantine"] == []

    def test_quarantine_reasons(self):
        """Test quarantine entries are grouped by table and reason"""
        quarantine = [
            {"fact_table": "fact_sales_items", "flags": ["GRAIN_CONFLICT"]},
            {"fact_table": "fact_sales_items", "flags": ["UNRESOLVED_REFERENCE"]},
            {"fact_table": "fact_sales_items", "flags": ["MALFORMED_AMOUNT", "UNRESOLVED_REFERENCE"]},
        ]

        report = data_quality_summary(
            {"clean_pos_items": [{"flags": ["DUPLICATE_RECORD"], "is_current": False}]},
            quarantine,
        )

        assert report["datasets"][0]["dataset"] == "pos_items"
        assert report["datasets"][0]["duplicate_records"] == 1
        assert report["quarantine"] == [
            {"fact_table": "fact_sales_items", "reason": "GRAIN_CONFLICT", "count": 1},
            {"fact_table": "fact_sales_items", "reason": "UNRESOLVED_REFERENCE", "count": 2},
        ]


class TestBuildReport:
    """Tests for report dispatch"""

    @pytest.mark.parametrize("name", REPORT_NAMES)
    def test_every_report_builds(self, loaded_store, name):
        """Test every named report runs over a completed store"""
        assert build_report(loaded_store, name) is not None

    def test_unknown_report(self, loaded_store):
        """Test unknown report names are rejected"""
        with pytest.raises(ValueError, match="Unknown report"):
            build_report(loaded_store, "churn_forecast")
