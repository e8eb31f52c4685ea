"""
Operator report of long running transactions.

Run before a batch of migrations to show which sessions might keep the
upcoming lock requests waiting.

Example:
    >>> reporter = BlockingTransactionsReporter(engine, output=print)
    >>> await reporter.run()
    Potentially blocking transactions:
    Primary database:
        app | tables ("public"."orders") | transaction open for 0:01:12 | query: ...
"""

from __future__ import annotations

import io
import logging
from collections.abc import Callable, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from pglockguard.blocking.transactions import BlockingTransactionScanner, LongRunningTransaction
from pglockguard.config import LockConfig

logger = logging.getLogger(__name__)

PRIMARY_DATABASE = "Primary database"

_CONCURRENT_INDEX_WARNING = """\
Warning: concurrent indexes are currently being built. If you have any other
         migrations in this deploy that will attempt to create additional
         concurrent indexes on the same physical database (even if the table
         being indexed is on another dimension) those migrations will not be
         able to complete until the in-progress index creations finish.
"""


class BlockingTransactionsReporter:
    """
    Formats long running transactions into a human readable report.

    Args:
        conn: Connection or engine to scan
        check_duration: Minimum transaction age in seconds. Defaults to
                        config.blocking_check_duration (30.0).
        config: Lock configuration supplying blocking_check_duration and
                enable_tracing (default: LockConfig())
        output: Callable receiving the report. The report is always logged
                at INFO level as well.
        scanner: Optional pre-built scanner, replacing the one built on conn
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        check_duration: float | None = None,
        config: LockConfig | None = None,
        output: Callable[[str], None] | None = None,
        scanner: BlockingTransactionScanner | None = None,
    ) -> None:
        config = config or LockConfig()
        self._scanner = scanner or BlockingTransactionScanner(
            conn, enable_tracing=config.enable_tracing
        )
        if check_duration is None:
            check_duration = config.blocking_check_duration
        self._check_duration = check_duration
        self._output = output

    async def get_blocking_transactions(self) -> dict[str, list[LongRunningTransaction]]:
        """Long running transactions keyed by database label."""
        transactions = await self._scanner.find_blocking_transactions(self._check_duration)
        return {PRIMARY_DATABASE: transactions}

    @staticmethod
    def report(transactions_by_database: Mapping[str, Sequence[LongRunningTransaction]]) -> str:
        """
        Render the report text.

        Each database gets its own section. A section lists one transaction
        per paragraph and ends with a warning when any of them is building
        an index concurrently.
        """
        report = io.StringIO()
        report.write("Potentially blocking transactions:\n")
        for label, transactions in transactions_by_database.items():
            report.write(f"{label}:\n")
            if not transactions:
                report.write("\t(no long running transactions)\n\n")
            for transaction in transactions:
                report.write(f"\t{transaction.description}\n\n")

            if any(transaction.concurrent_index_creation for transaction in transactions):
                for line in _CONCURRENT_INDEX_WARNING.splitlines(keepends=True):
                    report.write(f"\t{line}")
                report.write("\n")
        return report.getvalue()

    async def run(self) -> str | None:
        """
        Emit the report if any long running transaction exists.

        Returns:
            The report text, or None when there was nothing to report
        """
        transactions_by_database = await self.get_blocking_transactions()
        if not any(transactions_by_database.values()):
            logger.debug("No transactions older than %ss", self._check_duration)
            return None

        report = self.report(transactions_by_database)
        logger.info("%s", report)
        if self._output is not None:
            self._output(report)
        return report


__all__ = [
    "PRIMARY_DATABASE",
    "BlockingTransactionsReporter",
]
