"""
Shared test fixtures for the pglockguard library.

Usage:
    from tests.fixtures import FakeConnection, driver_error
"""

from tests.fixtures.connection import (
    FakeConnection,
    FakeDriverError,
    FakeResult,
    FakeTransaction,
    driver_error,
)

__all__ = [
    "FakeConnection",
    "FakeDriverError",
    "FakeResult",
    "FakeTransaction",
    "driver_error",
]
