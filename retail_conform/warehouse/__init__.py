"""
Conformed warehouse storage: connection pool, schema DDL and table stores.
"""

from .connection import DatabaseConnectionPool, close_pool, get_pool, initialize_pool
from .schema_mgmt import SchemaManager, clean_table_name
from .table_store import InMemoryTableStore, PostgresTableStore, TableStore

__all__ = [
    "DatabaseConnectionPool",
    "initialize_pool",
    "get_pool",
    "close_pool",
    "SchemaManager",
    "clean_table_name",
    "TableStore",
    "InMemoryTableStore",
    "PostgresTableStore",
]
