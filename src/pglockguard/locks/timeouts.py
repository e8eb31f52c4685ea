"""
Fast-fail timeouts for lock acquisition.

A LOCK TABLE statement waits in the server's lock queue, and while it waits
every later statement touching the table queues up behind it. Bounding the
wait with ``lock_timeout`` (or ``statement_timeout`` on servers older than
9.3) keeps that stall short. When the timeout expires the server cancels
the statement with a well-known SQLSTATE, which ``is_timeout_error``
recognizes.

Example:
    >>> async with conn.begin():
    ...     async with adjust_lock_timeout(conn, 5):
    ...         await conn.execute(text('LOCK TABLE "public"."orders" IN SHARE MODE;'))
"""

from __future__ import annotations

import logging
import math
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = "lock_timeout"
STATEMENT_TIMEOUT = "statement_timeout"

SQLSTATE_LOCK_NOT_AVAILABLE = "55P03"
SQLSTATE_QUERY_CANCELED = "57014"

_TIMEOUT_SETTINGS = frozenset({LOCK_TIMEOUT, STATEMENT_TIMEOUT})

_SET_CONFIG = text("SELECT set_config(:setting, :value, false)")


def fast_fail_setting(conn: AsyncConnection) -> str:
    """
    Name of the setting used to bound a LOCK attempt on this server.

    ``lock_timeout`` appeared in PostgreSQL 9.3; older servers fall back to
    ``statement_timeout``.
    """
    version = conn.dialect.server_version_info
    if version and version < (9, 3):
        return STATEMENT_TIMEOUT
    return LOCK_TIMEOUT


@asynccontextmanager
async def adjust_timeout(
    conn: AsyncConnection,
    setting: str,
    seconds: float,
) -> AsyncIterator[None]:
    """
    Temporarily set a timeout setting for the current session.

    The previous value reported by ``SHOW`` is put back when the block exits
    normally. When the block raises nothing is restored: the surrounding
    transaction or savepoint is expected to roll back, which reverts the
    change.

    Args:
        conn: Connection inside the transaction that should be bounded
        setting: ``lock_timeout`` or ``statement_timeout``
        seconds: New timeout, in seconds

    Raises:
        ValueError: If ``setting`` is not a timeout setting, or ``seconds``
            is not positive
    """
    if setting not in _TIMEOUT_SETTINGS:
        raise ValueError(f"Unsupported timeout setting: {setting!r}")
    if seconds <= 0:
        # 0 would disable the timeout altogether
        raise ValueError(f"Timeout must be positive, got {seconds}")

    # SHOW cannot take bind parameters; setting is whitelisted above
    previous = (await conn.execute(text(f"SHOW {setting}"))).scalar_one()
    # Rounded up so that sub-millisecond values never become 0 (no timeout)
    value = f"{math.ceil(round(seconds * 1000, 6))}ms"

    logger.debug("Setting %s to %s (was %s)", setting, value, previous)
    await conn.execute(_SET_CONFIG, {"setting": setting, "value": value})

    yield

    await conn.execute(_SET_CONFIG, {"setting": setting, "value": previous})


def adjust_lock_timeout(
    conn: AsyncConnection, seconds: float
) -> AbstractAsyncContextManager[None]:
    """Temporarily set ``lock_timeout``. See ``adjust_timeout``."""
    return adjust_timeout(conn, LOCK_TIMEOUT, seconds)


def adjust_statement_timeout(
    conn: AsyncConnection, seconds: float
) -> AbstractAsyncContextManager[None]:
    """Temporarily set ``statement_timeout``. See ``adjust_timeout``."""
    return adjust_timeout(conn, STATEMENT_TIMEOUT, seconds)


def is_timeout_error(exc: BaseException, setting: str = LOCK_TIMEOUT) -> bool:
    """
    Check whether a database error means the fast-fail timeout expired.

    ``lock_not_available`` always counts. ``query_canceled`` only counts when
    the attempt was bounded by ``statement_timeout``, since otherwise it may
    come from an operator cancelling the backend.

    Args:
        exc: Error raised while executing the LOCK statement
        setting: The fast-fail setting that was in effect
    """
    if not isinstance(exc, DBAPIError):
        return False
    sqlstate = _sqlstate(exc)
    if sqlstate == SQLSTATE_LOCK_NOT_AVAILABLE:
        return True
    return sqlstate == SQLSTATE_QUERY_CANCELED and setting == STATEMENT_TIMEOUT


def _sqlstate(exc: DBAPIError) -> str | None:
    # asyncpg adapters expose ``sqlstate``, psycopg2 exposes ``pgcode``
    for error in (exc.orig, getattr(exc.orig, "__cause__", None)):
        if error is None:
            continue
        code = getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)
        if code:
            return str(code)
    return None


__all__ = [
    "LOCK_TIMEOUT",
    "STATEMENT_TIMEOUT",
    "SQLSTATE_LOCK_NOT_AVAILABLE",
    "SQLSTATE_QUERY_CANCELED",
    "adjust_timeout",
    "adjust_lock_timeout",
    "adjust_statement_timeout",
    "fast_fail_setting",
    "is_timeout_error",
]
