"""
Schema management for the conformed warehouse.

Creates the clean-layer tables, the dimensions, the facts with their
grain-protecting unique indexes and dimension foreign keys, the fact
quarantine and the surrogate key map.
"""

from typing import Iterable

from psycopg import sql

from retail_conform.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

CLEAN_TABLE_PREFIX = "clean_"
QUARANTINE_TABLE = "fact_quarantine"

CLEAN_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS {table} (
        clean_sk          BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
        sequence          INTEGER NOT NULL,
        natural_key       TEXT,
        data              JSONB NOT NULL,
        source_values     JSONB NOT NULL,
        flags             TEXT[] NOT NULL,
        issues            JSONB NOT NULL,
        is_current        BOOLEAN NOT NULL,
        batch_id          VARCHAR(100) NOT NULL,
        arrival_timestamp TIMESTAMPTZ NOT NULL,
        source_file       VARCHAR(255)
    )
"""

CORE_DDL = [
    """
    CREATE TABLE IF NOT EXISTS surrogate_key_map (
        dimension     VARCHAR(50) NOT NULL,
        natural_key   TEXT NOT NULL,
        surrogate_key INTEGER NOT NULL,
        PRIMARY KEY (dimension, natural_key),
        UNIQUE (dimension, surrogate_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dim_date (
        date_sk     INTEGER PRIMARY KEY,
        full_date   DATE NOT NULL,
        year_num    INTEGER NOT NULL,
        quarter_num INTEGER NOT NULL,
        month_num   INTEGER NOT NULL,
        month_name  VARCHAR(20) NOT NULL,
        day_num     INTEGER NOT NULL,
        day_name    VARCHAR(20) NOT NULL,
        is_weekend  BOOLEAN NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_dim_date_nk ON dim_date (full_date)",
    """
    CREATE TABLE IF NOT EXISTS dim_product (
        product_sk     INTEGER PRIMARY KEY,
        product_id     INTEGER NOT NULL,
        sku            VARCHAR(50),
        product_name   VARCHAR(255),
        category       VARCHAR(100),
        subcategory    VARCHAR(100),
        brand          VARCHAR(100),
        cost           NUMERIC(12,2),
        price          NUMERIC(12,2),
        margin         NUMERIC(12,2),
        season         VARCHAR(50),
        launch_date    DATE,
        status         VARCHAR(50),
        load_timestamp TIMESTAMPTZ NOT NULL,
        source_file    VARCHAR(255),
        batch_id       VARCHAR(100) NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_dim_product_nk ON dim_product (product_id)",
    """
    CREATE TABLE IF NOT EXISTS dim_store (
        store_sk       INTEGER PRIMARY KEY,
        store_id       INTEGER NOT NULL,
        store_name     VARCHAR(255),
        store_type     VARCHAR(50),
        region         VARCHAR(50),
        address        VARCHAR(255),
        opening_date   DATE,
        manager_id     VARCHAR(50),
        load_timestamp TIMESTAMPTZ NOT NULL,
        source_file    VARCHAR(255),
        batch_id       VARCHAR(100) NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_dim_store_nk ON dim_store (store_id)",
    """
    CREATE TABLE IF NOT EXISTS fact_pos_transactions (
        pos_transaction_sk BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
        transaction_id     VARCHAR(50) NOT NULL,
        store_sk           INTEGER NOT NULL REFERENCES dim_store (store_sk),
        date_sk            INTEGER NOT NULL REFERENCES dim_date (date_sk),
        cashier_id         VARCHAR(50),
        customer_id        VARCHAR(50),
        payment_method     VARCHAR(50),
        total_amount       NUMERIC(12,2),
        discount_amount    NUMERIC(12,2) NOT NULL,
        tax_amount         NUMERIC(12,2) NOT NULL,
        net_revenue        NUMERIC(12,2),
        batch_id           VARCHAR(100) NOT NULL,
        source_file        VARCHAR(255),
        load_timestamp     TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_fact_pos_transaction ON fact_pos_transactions (transaction_id)",
    """
    CREATE TABLE IF NOT EXISTS fact_ecom_orders (
        ecom_order_sk   BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
        order_id        VARCHAR(50) NOT NULL,
        date_sk         INTEGER NOT NULL REFERENCES dim_date (date_sk),
        customer_id     VARCHAR(50),
        order_status    VARCHAR(50),
        channel         VARCHAR(50),
        device_type     VARCHAR(50),
        traffic_source  VARCHAR(100),
        total_amount    NUMERIC(12,2),
        discount_amount NUMERIC(12,2) NOT NULL,
        shipping_cost   NUMERIC(12,2) NOT NULL,
        net_revenue     NUMERIC(12,2),
        batch_id        VARCHAR(100) NOT NULL,
        source_file     VARCHAR(255),
        load_timestamp  TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_fact_ecom_order ON fact_ecom_orders (order_id)",
    """
    CREATE TABLE IF NOT EXISTS fact_sales_items (
        sales_item_sk  BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
        source_system  VARCHAR(10) NOT NULL CHECK (source_system IN ('POS', 'ECOM')),
        transaction_id VARCHAR(50) NOT NULL,
        product_sk     INTEGER NOT NULL REFERENCES dim_product (product_sk),
        store_sk       INTEGER REFERENCES dim_store (store_sk),
        date_sk        INTEGER NOT NULL REFERENCES dim_date (date_sk),
        quantity       INTEGER,
        unit_price     NUMERIC(12,2),
        line_revenue   NUMERIC(12,2),
        batch_id       VARCHAR(100) NOT NULL,
        source_file    VARCHAR(255),
        load_timestamp TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_fact_sales_items_grain
        ON fact_sales_items (source_system, transaction_id, product_sk, date_sk)
    """,
    """
    CREATE TABLE IF NOT EXISTS fact_returns (
        return_sk         BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
        return_id         VARCHAR(50) NOT NULL,
        transaction_id    VARCHAR(50),
        product_sk        INTEGER NOT NULL REFERENCES dim_product (product_sk),
        store_sk          INTEGER REFERENCES dim_store (store_sk),
        date_sk           INTEGER NOT NULL REFERENCES dim_date (date_sk),
        quantity_returned INTEGER,
        refund_amount     NUMERIC(12,2),
        return_reason     VARCHAR(100),
        return_channel    VARCHAR(50),
        batch_id          VARCHAR(100) NOT NULL,
        source_file       VARCHAR(255),
        load_timestamp    TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_fact_return ON fact_returns (return_id)",
    """
    CREATE TABLE IF NOT EXISTS fact_inventory_snapshots (
        inventory_sk        BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
        product_sk          INTEGER NOT NULL REFERENCES dim_product (product_sk),
        store_sk            INTEGER NOT NULL REFERENCES dim_store (store_sk),
        date_sk             INTEGER NOT NULL REFERENCES dim_date (date_sk),
        beginning_inventory INTEGER,
        ending_inventory    INTEGER,
        inventory_value     NUMERIC(14,2),
        safety_stock        INTEGER,
        stock_status        VARCHAR(50),
        inventory_delta     INTEGER,
        below_safety_stock  BOOLEAN NOT NULL,
        batch_id            VARCHAR(100) NOT NULL,
        source_file         VARCHAR(255),
        load_timestamp      TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_fact_inventory_snapshots_grain
        ON fact_inventory_snapshots (product_sk, store_sk, date_sk)
    """,
    """
    CREATE TABLE IF NOT EXISTS fact_quarantine (
        quarantine_sk     BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
        fact_table        VARCHAR(50) NOT NULL,
        dataset           VARCHAR(50) NOT NULL,
        natural_key       TEXT,
        sequence          INTEGER NOT NULL,
        flags             TEXT[] NOT NULL,
        reasons           TEXT[] NOT NULL,
        batch_id          VARCHAR(100) NOT NULL,
        arrival_timestamp TIMESTAMPTZ NOT NULL,
        source_file       VARCHAR(255)
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_fact_quarantine_table ON fact_quarantine (fact_table)",
]


def clean_table_name(dataset: str) -> str:
    """Return the clean-layer table name of a dataset."""
    return f"{CLEAN_TABLE_PREFIX}{dataset}"


class SchemaManager:
    """
    Creates the conformed warehouse schema.

    All statements are idempotent (``IF NOT EXISTS``) and run in a single
    transaction.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize schema manager.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    def statements(self, datasets: Iterable[str]) -> list:
        """
        Build the DDL statements for the given clean-layer datasets.

        Args:
            datasets: Dataset names that get a clean table

        Returns:
            Ordered DDL statements
        """
        statements: list = []
        for dataset in sorted(datasets):
            table = clean_table_name(dataset)
            statements.append(
                sql.SQL(CLEAN_TABLE_DDL).format(table=sql.Identifier(table))
            )
            statements.append(
                sql.SQL("CREATE INDEX IF NOT EXISTS {index} ON {table} (is_current)").format(
                    index=sql.Identifier(f"ix_{table}_current"),
                    table=sql.Identifier(table),
                )
            )
        statements.extend(sql.SQL(statement) for statement in CORE_DDL)
        return statements

    def create_schema(self, datasets: Iterable[str]) -> int:
        """
        Create every table and index of the conformed schema.

        Args:
            datasets: Dataset names that get a clean table

        Returns:
            Number of statements executed
        """
        statements = self.statements(datasets)
        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(statement)
            conn.commit()

        logger.info(f"Created conformed schema ({len(statements)} statements)")
        return len(statements)
