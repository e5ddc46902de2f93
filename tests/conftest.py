"""
Pytest configuration and fixtures for batchsync tests

This module provides shared fixtures for unit and integration tests.
"""
import pytest
from typing import Generator

from batchsync.importer import BatchImportFactory
from batchsync.warehouse.connection import DatabaseConnectionPool

from tests.support import (
    POSTGRES_DB,
    POSTGRES_PASSWORD,
    POSTGRES_USER,
    FixedClock,
    InMemoryPersistence,
    InMemoryTransactionRunner,
)

TEST_TABLE_DDL = """
    CREATE TABLE test_table (
        id BIGSERIAL PRIMARY KEY,
        a VARCHAR(255) NOT NULL,
        b VARCHAR(255),
        c VARCHAR(255),
        d TIMESTAMP,
        last_batch_id BIGINT,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
"""


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# IN-MEMORY FIXTURES
# =======================

@pytest.fixture
def persistence() -> InMemoryPersistence:
    """In-memory persistence evaluating chunk predicates on dictionaries"""
    return InMemoryPersistence()


@pytest.fixture
def transactions(persistence) -> InMemoryTransactionRunner:
    """Transaction runner restoring the in-memory tables on failure"""
    return InMemoryTransactionRunner(persistence)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def factory(persistence, transactions, clock) -> BatchImportFactory:
    """Factory creating imports against the in-memory persistence"""
    return BatchImportFactory(persistence, transactions, clock=clock)


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL container for integration tests

    Skips the requesting tests when Docker is not available.

    Yields:
        PostgresContainer instance
    """
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer(
        image="postgres:16.2-alpine",
        username=POSTGRES_USER,
        password=POSTGRES_PASSWORD,
        dbname=POSTGRES_DB,
        driver=None,
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    yield container

    container.stop()


@pytest.fixture(scope="session")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open a connection pool against the test container

    Yields:
        DatabaseConnectionPool instance
    """
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database=POSTGRES_DB,
        user=POSTGRES_USER,
        password=POSTGRES_PASSWORD,
        min_size=1,
        max_size=4,
    )
    pool.open()

    yield pool

    pool.close()


@pytest.fixture(scope="function")
def test_table(db_pool) -> DatabaseConnectionPool:
    """
    Provide a freshly created test_table

    Returns:
        The pool, for convenience
    """
    db_pool.execute_command("DROP TABLE IF EXISTS test_table")
    db_pool.execute_command(TEST_TABLE_DDL)
    return db_pool


@pytest.fixture
def db_factory(db_pool, clock) -> BatchImportFactory:
    """Factory creating imports writing to the test container"""
    return BatchImportFactory.from_pool(db_pool, clock=clock)
