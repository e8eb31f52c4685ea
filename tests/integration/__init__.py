"""
Integration tests for the pglockguard library.

These tests require a PostgreSQL server provisioned with testcontainers.
They are skipped automatically if Docker is not available.

Run integration tests:
    pytest tests/integration/ -v -m postgres

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
