"""
Detection of long running transactions that hold table locks.

The scan joins pg_stat_activity with pg_locks and the catalog to find other
sessions whose transaction has been open longer than a threshold. Each
result aggregates every ordinary or partitioned table the session holds a
lock on, together with the lock mode.

Routine autovacuum workers are skipped because they yield to conflicting
lock requests on their own. Autovacuum running "to prevent wraparound" does
not yield and is always reported.

PostgreSQL snapshots pg_stat_activity once per transaction. Each scan discards
that snapshot first, so repeated scans on a connection with an open
transaction still see sessions that started after the first scan.

Example:
    >>> async with engine.connect() as conn:
    ...     for transaction in await find_blocking_transactions(conn, 30):
    ...         print(transaction.description)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, InstanceOf, field_validator
from sqlalchemy import TextClause, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from pglockguard._connection import connection_scope
from pglockguard.observability import (
    ATTR_BLOCKING_COUNT,
    ATTR_MIN_TRANSACTION_AGE,
    Tracer,
    create_tracer,
)
from pglockguard.relations import TableReference

logger = logging.getLogger(__name__)

AUTOVACUUM_PATTERN = "^autovacuum: (?!.*to prevent wraparound)"

_CONCURRENT_INDEX_PATTERN = re.compile(r"create\s+index\s+concurrently", re.IGNORECASE)

# Statistics views are snapshotted once per transaction
_CLEAR_STATS_SNAPSHOT = text("SELECT pg_stat_clear_snapshot()")

_BLOCKING_TRANSACTIONS_SQL = """
    SELECT
      psa.datname AS database,
      psa.{query_column} AS current_query,
      psa.state,
      clock_timestamp() - psa.xact_start AS transaction_age,
      array_agg(c.relname::text) AS table_names,
      array_agg(ns.nspname::text) AS table_schemas,
      array_agg(l.mode) AS lock_modes
    FROM pg_stat_activity psa
      LEFT JOIN pg_locks l ON (psa.{pid_column} = l.pid)
      LEFT JOIN pg_class c ON (
        l.locktype = 'relation'
        AND l.mode <> 'SIReadLock'
        AND l.relation = c.oid
        -- oids are only unique per database
        AND l.database = (SELECT d.oid FROM pg_database d WHERE d.datname = current_database())
      )
      LEFT JOIN pg_namespace ns ON (c.relnamespace = ns.oid)
    WHERE psa.{pid_column} != pg_backend_pid()
      AND psa.datname = current_database()
      AND (
        l.locktype IS NULL
        OR l.locktype != 'relation'
        OR (
          ns.nspname != 'pg_catalog'
          AND c.relkind IN ('r', 'p')
        )
      )
      AND psa.xact_start < clock_timestamp() - CAST(:minimum_transaction_age AS interval)
      AND psa.{query_column} !~ :autovacuum_pattern
    GROUP BY psa.{pid_column}, psa.datname, psa.{query_column}, psa.state, psa.xact_start
    ORDER BY psa.xact_start
"""


class LongRunningTransaction(BaseModel):
    """
    A backend session whose open transaction may block lock acquisition.

    Attributes:
        database: Database the session is connected to
        current_query: Text of the running query, or of the last one when idle
        state: pg_stat_activity state, e.g. "active" or "idle in transaction"
        transaction_age: How long the transaction has been open
        tables_with_locks: Tables the session holds locks on, each carrying
            the lock mode held
    """

    model_config = ConfigDict(frozen=True)

    database: str = ""
    current_query: str = ""
    state: str | None = None
    transaction_age: timedelta = Field(default_factory=timedelta)
    tables_with_locks: tuple[InstanceOf[TableReference], ...] = ()

    @field_validator("database", "current_query", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("tables_with_locks", mode="before")
    @classmethod
    def _coerce_tables(cls, value: Any) -> tuple[TableReference, ...]:
        """Accept TableReference objects or (name, schema[, mode]) sequences."""
        if value is None:
            return ()
        tables: list[TableReference] = []
        for item in value:
            if isinstance(item, TableReference):
                tables.append(item)
            else:
                name, schema, *rest = item
                tables.append(TableReference(name, schema, rest[0] if rest else None))
        return tuple(tables)

    @property
    def idle(self) -> bool:
        """True when the session is idle inside its open transaction."""
        return self.state == "idle in transaction"

    @property
    def concurrent_index_creation(self) -> bool:
        """True when the session is building an index concurrently."""
        return bool(_CONCURRENT_INDEX_PATTERN.search(self.current_query))

    @property
    def description(self) -> str:
        """Single line, human readable summary for operator output."""
        locked_tables = ", ".join(table.fully_qualified_name for table in self.tables_with_locks)
        idle = self.idle
        parts = [
            self.database,
            f"tables ({locked_tables})" if locked_tables else None,
            f"{'currently idle ' if idle else ''}transaction open for {self.transaction_age}",
            f"{'last ' if idle else ''}query: {self.current_query}",
        ]
        return " | ".join(part for part in parts if part)

    def blocks(self, tables: Iterable[TableReference]) -> bool:
        """
        Check whether any lock held by this session conflicts with ``tables``.

        Args:
            tables: Requested tables, each carrying the mode being requested
        """
        requested = list(tables)
        return any(
            held.conflicts_with(table) for held in self.tables_with_locks for table in requested
        )


class BlockingTransactionScanner:
    """
    Finds sessions holding table locks for longer than a threshold.

    The scan is read-only. Database errors propagate to the caller; a failed
    query is never reported as "no blockers".

    Example:
        >>> scanner = BlockingTransactionScanner(conn)
        >>> blockers = await scanner.find_blocking_transactions(timedelta(seconds=5))
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the scanner.

        Args:
            conn: Connection or engine to query. Passing the connection that
                  will take the lock keeps that session out of the results.
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
        """
        self._conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def find_blocking_transactions(
        self,
        minimum_transaction_age: float | timedelta = 0,
    ) -> list[LongRunningTransaction]:
        """
        List sessions whose transaction is older than ``minimum_transaction_age``.

        Args:
            minimum_transaction_age: Seconds, or a timedelta

        Returns:
            One LongRunningTransaction per offending session, oldest first
        """
        if not isinstance(minimum_transaction_age, timedelta):
            minimum_transaction_age = timedelta(seconds=minimum_transaction_age)

        with self._tracer.span(
            "pglockguard.blocking_transactions.find",
            {
                ATTR_MIN_TRANSACTION_AGE: minimum_transaction_age.total_seconds(),
            },
        ) as span:
            async with connection_scope(self._conn) as connection:
                await connection.execute(_CLEAR_STATS_SNAPSHOT)
                result = await connection.execute(
                    _blocking_transactions_query(connection),
                    {
                        "minimum_transaction_age": minimum_transaction_age,
                        "autovacuum_pattern": AUTOVACUUM_PATTERN,
                    },
                )
                rows = result.mappings().all()

            transactions = [_to_transaction(row) for row in rows]

            if span is not None:
                span.set_attribute(ATTR_BLOCKING_COUNT, len(transactions))

        logger.debug(
            "Found %d transactions older than %s",
            len(transactions),
            minimum_transaction_age,
        )
        return transactions


async def find_blocking_transactions(
    conn: AsyncConnection | AsyncEngine,
    minimum_transaction_age: float | timedelta = 0,
) -> list[LongRunningTransaction]:
    """
    List transactions currently holding table locks longer than a threshold.

    Convenience wrapper around BlockingTransactionScanner.

    Example:
        >>> blockers = await find_blocking_transactions(engine, 30)
    """
    scanner = BlockingTransactionScanner(conn)
    return await scanner.find_blocking_transactions(minimum_transaction_age)


def _blocking_transactions_query(conn: AsyncConnection) -> TextClause:
    # pg_stat_activity columns were renamed in 9.2
    version = conn.dialect.server_version_info or ()
    if version and version < (9, 2):
        pid_column, query_column = "procpid", "current_query"
    else:
        pid_column, query_column = "pid", "query"
    return text(
        _BLOCKING_TRANSACTIONS_SQL.format(pid_column=pid_column, query_column=query_column)
    )


def _to_transaction(row: Any) -> LongRunningTransaction:
    names = row["table_names"] or []
    schemas = row["table_schemas"] or []
    modes = row["lock_modes"] or []
    tables = [
        (name, schema, mode)
        for name, schema, mode in zip(names, schemas, modes, strict=False)
        if name is not None
    ]
    return LongRunningTransaction(
        database=row["database"],
        current_query=row["current_query"],
        state=row["state"],
        transaction_age=row["transaction_age"],
        tables_with_locks=tables,
    )


__all__ = [
    "AUTOVACUUM_PATTERN",
    "BlockingTransactionScanner",
    "LongRunningTransaction",
    "find_blocking_transactions",
]
