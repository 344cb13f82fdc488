"""
Integration tests for the database connection pool (testcontainers).
"""
import pytest

from retail_conform.warehouse.connection import (
    DatabaseConnectionPool,
    close_pool,
    get_pool,
    initialize_pool,
)


@pytest.mark.integration
def test_connection_pool_initialization(db_settings):
    """Test that connection pool initializes correctly"""
    pool = DatabaseConnectionPool(min_size=2, max_size=5, **db_settings)

    pool.open()

    assert pool._pool is not None
    assert pool._pool.min_size == 2
    assert pool._pool.max_size == 5

    pool.close()
    assert pool.is_open is False


@pytest.mark.integration
def test_execute_query(db_settings):
    """Test query results come back as dictionaries"""
    with DatabaseConnectionPool(**db_settings) as pool:
        rows = pool.execute_query("SELECT 1 AS value")

    assert rows == [{"value": 1}]


@pytest.mark.integration
def test_execute_command(db_settings):
    """Test commands are committed"""
    with DatabaseConnectionPool(**db_settings) as pool:
        pool.execute_command("CREATE TABLE IF NOT EXISTS pool_check (id INTEGER)")
        pool.execute_command("TRUNCATE pool_check")
        inserted = pool.execute_command("INSERT INTO pool_check (id) VALUES (%s), (%s)", (1, 2))
        rows = pool.execute_query("SELECT count(*) AS n FROM pool_check")
        pool.execute_command("DROP TABLE pool_check")

    assert inserted == 2
    assert rows[0]["n"] == 2


@pytest.mark.integration
def test_global_pool(db_settings):
    """Test global pool initialization and cleanup"""
    pool = initialize_pool(**db_settings)

    assert get_pool() is pool

    close_pool()

    with pytest.raises(RuntimeError):
        get_pool()
