"""
Shared pytest fixtures for integration tests.

This module provides a PostgreSQL server using testcontainers for automatic
container management, plus helpers to create test tables.

If testcontainers or Docker is not available, tests are automatically skipped.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest
import pytest_asyncio

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for integration tests."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (may require docker)"
    )
    config.addinivalue_line("markers", "postgres: marks tests that require PostgreSQL")


# ============================================================================
# Testcontainers Detection
# ============================================================================

TESTCONTAINERS_AVAILABLE = False

try:
    from testcontainers.postgres import PostgresContainer

    TESTCONTAINERS_AVAILABLE = True
except ImportError:
    PostgresContainer = None  # type: ignore[assignment, misc]


def is_docker_available() -> bool:
    """Check if Docker is available for running containers."""
    import subprocess

    try:
        result = subprocess.run(
            ["docker", "info"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


DOCKER_AVAILABLE = is_docker_available()


# ============================================================================
# PostgreSQL Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[Any, None, None]:
    """
    Provide PostgreSQL container for integration tests.

    Container is shared across all tests in the session for efficiency.
    """
    if not TESTCONTAINERS_AVAILABLE or not DOCKER_AVAILABLE:
        pytest.skip("PostgreSQL testcontainer not available")

    container = PostgresContainer("postgres:15")
    container.start()

    yield container

    container.stop()


@pytest.fixture(scope="session")
def postgres_connection_url(postgres_container: Any) -> str:
    """Get PostgreSQL connection URL from container."""
    # testcontainers returns psycopg2 URL, convert to asyncpg
    url = postgres_container.get_connection_url()
    return url.replace("postgresql://", "postgresql+asyncpg://").replace("psycopg2", "asyncpg")


@pytest_asyncio.fixture
async def postgres_engine(postgres_connection_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """
    Provide a SQLAlchemy async engine connected to the PostgreSQL container.

    The engine is created per test so it is bound to the test's event loop.
    """
    from sqlalchemy.ext.asyncio import create_async_engine

    engine = create_async_engine(postgres_connection_url, echo=False, pool_size=5)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def table_name(postgres_engine: AsyncEngine) -> AsyncGenerator[str, None]:
    """Create a uniquely named table in the public schema and drop it afterwards."""
    from sqlalchemy import text

    name = f"lock_test_{uuid4().hex[:12]}"
    async with postgres_engine.begin() as conn:
        await conn.execute(text(f'CREATE TABLE "{name}" (id bigint PRIMARY KEY, note text)'))

    yield name

    async with postgres_engine.begin() as conn:
        await conn.execute(text(f'DROP TABLE IF EXISTS "{name}" CASCADE'))


@pytest_asyncio.fixture
async def partitioned_table(postgres_engine: AsyncEngine) -> AsyncGenerator[str, None]:
    """
    Create a range partitioned table with one sub-partitioned child.

    Layout: parent -> (parent_2024, parent_2025 -> parent_2025_a)
    """
    from sqlalchemy import text

    name = f"events_{uuid4().hex[:12]}"
    statements = [
        f"CREATE TABLE {name} (id bigint, created date, kind int) PARTITION BY RANGE (created)",
        f"CREATE TABLE {name}_2024 PARTITION OF {name} "
        "FOR VALUES FROM ('2024-01-01') TO ('2025-01-01')",
        f"CREATE TABLE {name}_2025 PARTITION OF {name} "
        "FOR VALUES FROM ('2025-01-01') TO ('2026-01-01') PARTITION BY LIST (kind)",
        f"CREATE TABLE {name}_2025_a PARTITION OF {name}_2025 FOR VALUES IN (1)",
    ]
    async with postgres_engine.begin() as conn:
        for statement in statements:
            await conn.execute(text(statement))

    yield name

    async with postgres_engine.begin() as conn:
        await conn.execute(text(f"DROP TABLE IF EXISTS {name} CASCADE"))
