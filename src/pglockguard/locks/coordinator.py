"""
Safe acquisition of PostgreSQL table locks.

Taking a strong lock on a busy table is dangerous: while LOCK TABLE waits for
existing holders, every new query on the table queues up behind it. The
coordinator avoids that stall by

1. waiting until no long running transaction holds a conflicting lock,
2. attempting the lock with a short fast-fail timeout,
3. backing off and starting over when the attempt times out.

Nested acquisitions within the same call chain are checked against the lock
that is actually held. Asking for tables outside it, or for a stronger mode,
is a bug in the calling migration and raises immediately.

Example:
    >>> async with engine.connect() as conn:
    ...     coordinator = LockAcquisitionCoordinator(conn, output=print)
    ...     async with coordinator.acquire("orders", mode="share"):
    ...         await conn.execute(text("ALTER TABLE orders ADD COLUMN note text"))
    ...     await conn.commit()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection

from pglockguard.blocking.transactions import BlockingTransactionScanner
from pglockguard.config import LockConfig
from pglockguard.exceptions import LockEscalationError, NestedLockError
from pglockguard.locks.modes import LockMode
from pglockguard.locks.timeouts import adjust_timeout, fast_fail_setting, is_timeout_error
from pglockguard.observability import (
    ATTR_LOCK_ATTEMPT,
    ATTR_LOCK_MODE,
    ATTR_LOCK_REENTRANT,
    ATTR_LOCK_TABLES,
    ATTR_LOCK_TIMEOUT,
    Tracer,
    create_tracer,
)
from pglockguard.relations import TableCollection, TableReference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockScope:
    """
    A lock held for the duration of an ``acquire`` block.

    Attributes:
        tables: Locked tables, including partitions found at acquisition time
        mode: Lock mode held on every table
        reentrant: True when the scope was satisfied by an enclosing lock and
            no LOCK statement was issued for it
    """

    tables: TableCollection
    mode: LockMode
    reentrant: bool = False


class AcquisitionContext:
    """
    Stack of lock scopes entered by one call chain.

    The top of the stack always describes the lock the session really holds.
    Reentrant scopes repeat the enclosing tables and mode.
    """

    def __init__(self) -> None:
        self._scopes: list[LockScope] = []

    @property
    def current(self) -> LockScope | None:
        """Innermost scope, or None when nothing is locked."""
        return self._scopes[-1] if self._scopes else None

    def push(self, scope: LockScope) -> None:
        self._scopes.append(scope)

    def pop(self) -> LockScope:
        return self._scopes.pop()

    @contextlib.contextmanager
    def scope(self, scope: LockScope) -> Iterator[LockScope]:
        """Push ``scope`` for the duration of the block."""
        self.push(scope)
        try:
            yield scope
        finally:
            self.pop()

    def __len__(self) -> int:
        return len(self._scopes)


class LockAttemptOutcome(Enum):
    """Result of a single LOCK TABLE attempt."""

    ACQUIRED = "acquired"
    TIMED_OUT = "timed_out"


def lock_statement(tables: TableCollection, mode: LockMode) -> str:
    """
    Render the LOCK TABLE statement for ``tables``.

    Colons are escaped so that ``text()`` does not read them as bind
    parameters.

    Example:
        >>> lock_statement(TableCollection([TableReference("foo", "public")]), LockMode.SHARE)
        'LOCK TABLE "public"."foo" IN SHARE MODE;'
    """
    table_sql = tables.to_sql().replace(":", "\\:")
    return f"LOCK TABLE {table_sql} IN {mode.to_sql()} MODE;"


class LockAcquisitionCoordinator:
    """
    Acquires table locks without stalling other traffic.

    A coordinator is bound to one connection and keeps the acquisition
    context for that connection's call chain. Create one per migration run;
    nested ``acquire`` calls must go through the same instance to be
    recognized as reentrant.

    Example:
        >>> coordinator = LockAcquisitionCoordinator(conn, config=LockConfig(fast_fail_timeout=2))
        >>> async with coordinator.acquire("orders", "order_items") as scope:
        ...     async with coordinator.acquire("orders", mode="share"):
        ...         ...  # reentrant, no second LOCK statement
    """

    def __init__(
        self,
        conn: AsyncConnection,
        *,
        config: LockConfig | None = None,
        scanner: BlockingTransactionScanner | None = None,
        output: Callable[[str], None] | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            conn: Connection the locks are taken on
            config: Timing configuration (default: LockConfig())
            scanner: Blocking transaction scanner. Defaults to one querying
                     ``conn`` so that this session never reports itself.
            output: Optional callable receiving human readable progress lines
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on config.enable_tracing.
        """
        self._conn = conn
        self._config = config or LockConfig()
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._scanner = scanner or BlockingTransactionScanner(conn, tracer=self._tracer)
        self._output = output
        self._context: AcquisitionContext | None = None

    @property
    def config(self) -> LockConfig:
        return self._config

    @property
    def context(self) -> AcquisitionContext | None:
        """Acquisition context of the running outer ``acquire``, if any."""
        return self._context

    @asynccontextmanager
    async def acquire(
        self,
        *tables: str | TableReference,
        mode: LockMode | str = LockMode.ACCESS_EXCLUSIVE,
    ) -> AsyncIterator[LockScope]:
        """
        Lock ``tables`` in ``mode`` for the duration of the block.

        The block runs inside a transaction (or a savepoint, when one is
        already open) that commits on normal exit and rolls back when the
        block raises.

        Args:
            *tables: Table names or TableReference objects
            mode: Lock mode (default: access_exclusive)

        Yields:
            The LockScope now in effect

        Raises:
            InvalidLockModeError: If ``mode`` is not a lock mode
            InvalidTableCollectionError: If no tables were given
            UndefinedTableError: If a table name cannot be resolved
            NestedLockError: If nested inside a lock on other tables
            LockEscalationError: If nested inside a weaker lock
        """
        mode = LockMode(mode)
        requested = await TableCollection.from_table_names(self._conn, tables, mode)

        with self._tracer.span(
            "pglockguard.lock.acquire",
            {
                ATTR_LOCK_TABLES: requested.to_sql(),
                ATTR_LOCK_MODE: mode.value,
            },
        ) as span:
            held = self._context.current if self._context is not None else None
            reentrant = held is not None

            if span is not None:
                span.set_attribute(ATTR_LOCK_REENTRANT, reentrant)

            if self._context is not None and held is not None:
                self._check_nested(requested, mode, held)
                logger.debug(
                    "Lock on %s in %s mode already held by enclosing scope",
                    requested.to_sql(),
                    mode.value,
                )
                marker = LockScope(held.tables, held.mode, reentrant=True)
                with self._context.scope(marker) as scope:
                    yield scope
                return

            self._context = AcquisitionContext()
            try:
                attempt = 0
                while True:
                    expanded = await self._wait_for_blockers(requested)
                    attempt += 1
                    async with self._lock_attempt(expanded, mode, attempt) as outcome:
                        if outcome is LockAttemptOutcome.ACQUIRED:
                            logger.info(
                                "Acquired %s lock on %s after %d attempt(s)",
                                mode.to_sql(),
                                expanded.to_sql(),
                                attempt,
                            )
                            with self._context.scope(LockScope(expanded, mode)) as scope:
                                yield scope
                            return
                    await self._back_off(expanded, mode)
            finally:
                self._context = None

    def _check_nested(self, requested: TableCollection, mode: LockMode, held: LockScope) -> None:
        if not requested.subset(held.tables):
            raise NestedLockError(requested, held.tables)
        if mode > held.mode:
            raise LockEscalationError(held.tables, held.mode, mode)

    async def _wait_for_blockers(self, requested: TableCollection) -> TableCollection:
        """
        Poll until no long running transaction conflicts with ``requested``.

        Partitions are looked up again on every poll, since they may be
        attached while we wait.

        Returns:
            ``requested`` expanded with its partitions
        """
        while True:
            expanded = await requested.with_partitions(self._conn)
            transactions = await self._scanner.find_blocking_transactions(
                self._config.fast_fail_timeout
            )
            blockers = [
                transaction for transaction in transactions if transaction.blocks(expanded)
            ]
            if not blockers:
                return expanded

            self._emit("Waiting on blocking transactions:", logging.WARNING)
            for blocker in blockers:
                self._emit(blocker.description, logging.WARNING)
            await self._sleep(self._config.blocker_poll_interval)

    @asynccontextmanager
    async def _lock_attempt(
        self,
        tables: TableCollection,
        mode: LockMode,
        attempt: int,
    ) -> AsyncIterator[LockAttemptOutcome]:
        """
        Try LOCK TABLE once inside a new transaction or savepoint.

        On ACQUIRED the transaction stays open until the block exits; it
        commits on normal exit and rolls back if the block raises. On
        TIMED_OUT the transaction has already been rolled back. Any other
        database error propagates.
        """
        setting = fast_fail_setting(self._conn)
        timeout = self._config.fast_fail_timeout
        statement = lock_statement(tables, mode)

        if self._conn.in_transaction():
            transaction = self._conn.begin_nested()
        else:
            transaction = self._conn.begin()

        async with transaction:
            outcome = LockAttemptOutcome.ACQUIRED
            with self._tracer.span(
                "pglockguard.lock.attempt",
                {
                    ATTR_LOCK_TABLES: tables.to_sql(),
                    ATTR_LOCK_MODE: mode.value,
                    ATTR_LOCK_ATTEMPT: attempt,
                    ATTR_LOCK_TIMEOUT: timeout,
                },
            ):
                try:
                    async with adjust_timeout(self._conn, setting, timeout):
                        logger.debug("Executing: %s", statement)
                        await self._conn.execute(text(statement))
                except DBAPIError as e:
                    if not is_timeout_error(e, setting):
                        raise
                    await transaction.rollback()
                    outcome = LockAttemptOutcome.TIMED_OUT

            yield outcome

    async def _back_off(self, tables: TableCollection, mode: LockMode) -> None:
        delay = self._config.retry_delay
        self._emit(
            f"Timed out trying to acquire {mode.to_sql()} lock "
            f"on the {tables.to_sql()} table(s).",
            logging.WARNING,
        )
        self._emit(
            f"Sleeping for {delay:g}s to allow potentially queued up queries "
            "to finish before continuing.",
            logging.WARNING,
        )
        await self._sleep(delay)

    def _emit(self, message: str, level: int = logging.INFO) -> None:
        logger.log(level, "%s", message)
        if self._output is not None:
            self._output(message)

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


__all__ = [
    "AcquisitionContext",
    "LockAcquisitionCoordinator",
    "LockAttemptOutcome",
    "LockScope",
    "lock_statement",
]
