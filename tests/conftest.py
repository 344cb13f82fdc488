"""
Pytest configuration and fixtures for retail-conform tests

This module provides shared fixtures for unit and integration tests.
"""
import os
import shutil
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generator

import pytest
from pyspark.sql import SparkSession
from testcontainers.postgres import PostgresContainer

from retail_conform.core.models import RawBatch
from retail_conform.core.rules import RuleConfigLoader, RuleSet
from retail_conform.warehouse.connection import DatabaseConnectionPool


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers or a JVM"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(autouse=True, scope="session")
def test_env_vars():
    """
    Set test environment variables

    This fixture loads tests/test.env and sets environment variables
    """
    from dotenv import load_dotenv

    env_path = os.path.join(os.path.dirname(__file__), "test.env")

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)


@pytest.fixture(scope="session")
def rule_set() -> RuleSet:
    """
    Rule set packaged with the library

    Returns:
        RuleSet loaded from retail_conform/config/conformance_rules.yaml
    """
    return RuleConfigLoader().load()


# =======================
# DATA FIXTURES
# =======================

BASE_ARRIVAL = datetime(2024, 3, 21, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def arrival() -> datetime:
    """Arrival timestamp shared by the sample batches"""
    return BASE_ARRIVAL


@pytest.fixture
def make_batch(arrival) -> Callable[..., RawBatch]:
    """
    Factory for raw batches

    Usage:
        batch = make_batch("products", [{"product_id": "501", ...}], offset_minutes=5)
    """
    def _make(
        dataset: str,
        rows: list[dict[str, Any]],
        batch_id: str = "batch_001",
        offset_minutes: int = 0,
        source_file: str | None = None,
        columns: list[str] | None = None,
    ) -> RawBatch:
        return RawBatch.from_rows(
            dataset,
            rows,
            batch_id=batch_id,
            arrival_timestamp=arrival + timedelta(minutes=offset_minutes),
            source_file=source_file or f"{dataset}_raw.csv",
            columns=columns,
        )

    return _make


def sample_retail_rows() -> dict[str, list[dict[str, Any]]]:
    """
    A small, consistent retail extract covering every dataset

    Two stores, two products (the second one loss-making), two POS
    transactions, one e-commerce order, two inventory positions (one out of
    stock) and one return.
    """
    return {
        "stores": [
            {"store_id": "1", "store_name": "Downtown Flagship", "store_type": "flagship store",
             "region": "west coast", "address": "1 Main St", "opening_date": "2019-05-01",
             "manager_id": "M10"},
            {"store_id": " 2 ", "store_name": "Mall Outlet", "store_type": "OUTLET",
             "region": "East", "address": "", "opening_date": "15 Jan 2020", "manager_id": "M11"},
        ],
        "products": [
            {"product_id": "501", "sku": "A-501", "product_name": "Trail Shoe", "category": "footwear",
             "subcategory": "running", "brand": "acme", "cost": "40.00", "price": "89.90",
             "season": "Autumn", "launch_date": "2023-01-10", "status": "Active"},
            {"product_id": "502", "sku": "B-502", "product_name": "Rain Jacket", "category": "Outerwear",
             "subcategory": "jackets", "brand": "Acme", "cost": "70.00", "price": "60.00",
             "season": "winter", "launch_date": "2022/11/01", "status": "discontinued"},
        ],
        "pos_transactions": [
            {"transaction_id": "T100", "store_id": "1", "transaction_timestamp": "2024-03-15 14:22:00",
             "cashier_id": "C1", "customer_id": "", "payment_method": "Visa Credit",
             "total_amount": "179.80", "discount_amount": "10.00", "tax_amount": "14.38"},
            {"transaction_id": "T101", "store_id": "2", "transaction_timestamp": "2024-03-16 09:05",
             "cashier_id": "C2", "customer_id": "CU1", "payment_method": "cash",
             "total_amount": "60.00", "discount_amount": "", "tax_amount": "4.80"},
        ],
        "pos_items": [
            {"transaction_id": "T100", "product_id": "501", "quantity": "2",
             "unit_price": "89.90", "line_total": "179.80"},
            {"transaction_id": "T101", "product_id": "502", "quantity": "1",
             "unit_price": "60.00", "line_total": "60.00"},
        ],
        "ecom_orders": [
            {"order_id": "E200", "customer_id": "CU9", "order_timestamp": "2024-03-15T18:00:00Z",
             "order_status": "complete", "channel": "mobile app", "shipping_cost": "5.00",
             "total_amount": "89.90", "discount_amount": "0", "device_type": "Mobile",
             "traffic_source": "email"},
        ],
        "ecom_items": [
            {"order_item_id": "1", "order_id": "E200", "product_id": "501", "quantity": "1",
             "unit_price": "89.90", "line_total": "89.90"},
        ],
        "inventory_snapshots": [
            {"snapshot_date": "2024-03-15", "store_id": "1", "product_id": "501",
             "beginning_inventory": "20", "ending_inventory": "18", "inventory_value": "720.00",
             "stock_status": "in stock", "safety_stock": "5"},
            {"snapshot_date": "2024-03-15", "store_id": "2", "product_id": "502",
             "beginning_inventory": "3", "ending_inventory": "0", "inventory_value": "0.00",
             "stock_status": "Out of Stock", "safety_stock": "2"},
        ],
        "returns": [
            {"return_id": "R1", "transaction_id": "T100", "product_id": "501",
             "return_date": "2024-03-20", "return_reason": "defective sole",
             "refund_amount": "89.90", "quantity_returned": "1", "return_channel": "store"},
        ],
    }


@pytest.fixture
def retail_rows() -> dict[str, list[dict[str, Any]]]:
    """Sample rows keyed by dataset"""
    return sample_retail_rows()


@pytest.fixture
def retail_batches(make_batch, retail_rows) -> list[RawBatch]:
    """One raw batch per dataset built from the sample rows"""
    return [make_batch(dataset, rows) for dataset, rows in retail_rows.items()]


# =======================
# SPARK FIXTURES
# =======================

@pytest.fixture(scope="session")
def spark_session() -> Generator[SparkSession, None, None]:
    """
    Create a Spark session for testing with local mode

    Skips when no Java runtime is available.

    Yields:
        SparkSession configured for local testing
    """
    if shutil.which("java") is None and not os.getenv("JAVA_HOME"):
        pytest.skip("Java runtime not available for Spark")

    spark = (
        SparkSession.builder
        .appName("retail-conform-test")
        .master("local[2]")
        .config("spark.sql.shuffle.partitions", "2")
        .config("spark.driver.memory", "1g")
        .config("spark.ui.enabled", "false")  # Disable UI for tests
        .config("spark.sql.session.timeZone", "UTC")
        .getOrCreate()
    )

    # Set log level to WARN to reduce test output noise
    spark.sparkContext.setLogLevel("WARN")

    yield spark

    spark.stop()


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

POSTGRES_USER = "test_conform"
POSTGRES_PASSWORD = "test_password"
POSTGRES_DB = "test_retail_dw"


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Skips when Docker is not reachable.

    Yields:
        PostgresContainer instance
    """
    try:
        container = PostgresContainer(
            image="postgres:16.2-alpine",
            username=POSTGRES_USER,
            password=POSTGRES_PASSWORD,
            dbname=POSTGRES_DB,
        )
        container.start()
    except Exception as e:
        pytest.skip(f"Docker not available: {e}")

    yield container

    container.stop()


@pytest.fixture
def db_settings(postgres_container) -> dict[str, Any]:
    """Connection keyword arguments for the PostgreSQL container"""
    return {
        "host": postgres_container.get_container_host_ip(),
        "port": int(postgres_container.get_exposed_port(5432)),
        "database": POSTGRES_DB,
        "user": POSTGRES_USER,
        "password": POSTGRES_PASSWORD,
    }


@pytest.fixture
def db_pool(db_settings) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open connection pool on an empty public schema

    Args:
        db_settings: Container connection settings

    Yields:
        Open DatabaseConnectionPool
    """
    pool = DatabaseConnectionPool(**db_settings)
    pool.open()
    pool.execute_command("DROP SCHEMA IF EXISTS public CASCADE")
    pool.execute_command("CREATE SCHEMA public")

    yield pool

    pool.close()
