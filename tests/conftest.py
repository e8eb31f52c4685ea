"""
Shared pytest fixtures for the pglockguard library tests.

This module provides:
- A scripted fake connection (fake_conn)
- Long running transaction factories (make_transaction)
- A recording output callable (output_lines)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import Any

import pytest

from pglockguard.blocking.transactions import LongRunningTransaction
from pglockguard.observability import MockTracer
from tests.fixtures import FakeConnection


@pytest.fixture
def fake_conn() -> FakeConnection:
    """Provide a fake connection outside any transaction."""
    return FakeConnection()


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Provide a MockTracer recording spans."""
    return MockTracer()


@pytest.fixture
def output_lines() -> list[str]:
    """Provide a list that collects emitted progress lines."""
    return []


@pytest.fixture
def make_transaction() -> Callable[..., LongRunningTransaction]:
    """
    Factory for LongRunningTransaction instances.

    Tables are given as (name, schema, mode) tuples.
    """

    def _make(
        *tables: tuple[str, str, str],
        query: str = "SELECT pg_sleep(600)",
        state: str = "active",
        age: float = 60,
        database: str = "app",
        **overrides: Any,
    ) -> LongRunningTransaction:
        return LongRunningTransaction(
            database=database,
            current_query=query,
            state=state,
            transaction_age=timedelta(seconds=age),
            tables_with_locks=tables,
            **overrides,
        )

    return _make
