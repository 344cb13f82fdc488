"""
Conformed table stores.

A table store rebuilds whole tables: each ``replace_table`` call truncates
the table and inserts the new rows in one transaction, so a table is either
fully replaced or left untouched.
"""

import copy
from abc import ABC, abstractmethod
from typing import Any

import psycopg
from psycopg import sql

from retail_conform.core.errors import TableRebuildError
from retail_conform.dimensional.registry import SurrogateKeyRegistry
from retail_conform.observability.logger import get_logger
from retail_conform.observability.metrics import increment_counter, table_rebuilds_total

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)


class TableStore(ABC):
    """
    Abstract base class for conformed table stores.
    """

    @abstractmethod
    def replace_table(self, table: str, rows: list[dict[str, Any]]) -> int:
        """
        Truncate a table and insert ``rows`` atomically.

        Args:
            table: Table name
            rows: Column mappings; every row has the same keys

        Returns:
            Number of rows written

        Raises:
            TableRebuildError: If the rebuild failed and was rolled back
        """
        pass

    @abstractmethod
    def read_table(self, table: str) -> list[dict[str, Any]]:
        """Return every row of a table (empty when the table holds nothing)."""
        pass

    def load_key_registry(self) -> SurrogateKeyRegistry:
        """Load the persisted surrogate key registry."""
        return SurrogateKeyRegistry.from_rows(self.read_table(SurrogateKeyRegistry.TABLE_NAME))

    def save_key_registry(self, registry: SurrogateKeyRegistry) -> int:
        """Persist the surrogate key registry."""
        return self.replace_table(SurrogateKeyRegistry.TABLE_NAME, registry.to_rows())


class InMemoryTableStore(TableStore):
    """
    Table store backed by dictionaries, for dry runs and tests.

    Rows are deep-copied on the way in and out so callers cannot mutate
    stored tables.
    """

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {}

    def replace_table(self, table: str, rows: list[dict[str, Any]]) -> int:
        self.tables[table] = copy.deepcopy(rows)
        increment_counter(table_rebuilds_total, table=table, status="success")
        return len(rows)

    def read_table(self, table: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self.tables.get(table, []))

    def table_names(self) -> list[str]:
        return sorted(self.tables)


class PostgresTableStore(TableStore):
    """
    Table store writing to PostgreSQL through the connection pool.

    Each rebuild is ``TRUNCATE ... RESTART IDENTITY CASCADE`` followed by a
    batched ``INSERT`` in a single transaction. CASCADE empties dependent
    fact tables when a dimension is rebuilt; callers rebuild dimensions
    before facts.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize the store.

        Args:
            pool: Open database connection pool
        """
        self.pool = pool

    def replace_table(self, table: str, rows: list[dict[str, Any]]) -> int:
        truncate = sql.SQL("TRUNCATE TABLE {} RESTART IDENTITY CASCADE").format(sql.Identifier(table))

        insert = None
        params: list[tuple] = []
        if rows:
            columns = list(rows[0].keys())
            insert = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values})").format(
                table=sql.Identifier(table),
                columns=sql.SQL(", ").join(sql.Identifier(column) for column in columns),
                values=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
            )
            params = [tuple(row[column] for column in columns) for row in rows]

        with self.pool.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(truncate)
                    if insert is not None:
                        cur.executemany(insert, params)
                conn.commit()
            except psycopg.Error as e:
                conn.rollback()
                increment_counter(table_rebuilds_total, table=table, status="failure")
                logger.error(f"Rebuild of {table} rolled back: {e}", extra={"table": table})
                raise TableRebuildError(table, str(e)) from e

        increment_counter(table_rebuilds_total, table=table, status="success")
        logger.info(f"Rebuilt {table} with {len(rows)} rows", extra={"table": table})
        return len(rows)

    def read_table(self, table: str) -> list[dict[str, Any]]:
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(table))
        return self.pool.execute_query(query)
