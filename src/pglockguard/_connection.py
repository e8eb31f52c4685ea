"""
Connection handling helper for catalog queries.

Read-only helpers such as the blocking transaction scanner accept either an
AsyncEngine or an AsyncConnection. `connection_scope` hides the difference.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


@asynccontextmanager
async def connection_scope(
    conn: AsyncConnection | AsyncEngine,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection usable for a short read-only catalog query.

    When an AsyncEngine is provided, a bare connection (no BEGIN) is borrowed
    from the pool for the duration of the block. When an AsyncConnection is
    provided, it is yielded directly.

    Args:
        conn: Database connection or engine

    Yields:
        AsyncConnection ready for execute() calls

    Note:
        An AsyncConnection is yielded as-is, so the query runs inside
        whatever transaction the caller already has open. The scanner relies
        on this: it excludes its own backend via pg_backend_pid(), which is
        only meaningful when it shares the caller's session.
    """
    if isinstance(conn, AsyncEngine):
        async with conn.connect() as connection:
            yield connection
    else:
        # Caller is responsible for transaction management
        yield conn
