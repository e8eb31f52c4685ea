"""
Detection and reporting of transactions that may block lock acquisition.
"""

from pglockguard.blocking.reporter import PRIMARY_DATABASE, BlockingTransactionsReporter
from pglockguard.blocking.transactions import (
    AUTOVACUUM_PATTERN,
    BlockingTransactionScanner,
    LongRunningTransaction,
    find_blocking_transactions,
)

__all__ = [
    "AUTOVACUUM_PATTERN",
    "PRIMARY_DATABASE",
    "BlockingTransactionScanner",
    "BlockingTransactionsReporter",
    "LongRunningTransaction",
    "find_blocking_transactions",
]
