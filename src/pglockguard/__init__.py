"""
pglockguard - Safe table lock acquisition for PostgreSQL schema changes.

This library provides:
- The PostgreSQL table lock mode model and its conflict matrix
- Table references and collections with partition expansion
- Detection of long running transactions that hold conflicting locks
- A lock acquisition coordinator with fast-fail timeouts and backoff
- A pre-migration report of potentially blocking transactions
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pglockguard")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Locks (must be imported before pglockguard.blocking)
from pglockguard.locks import (
    AcquisitionContext,
    LockAcquisitionCoordinator,
    LockAttemptOutcome,
    LockMode,
    LockScope,
    adjust_lock_timeout,
    adjust_statement_timeout,
    adjust_timeout,
)

# Configuration
from pglockguard.config import LockConfig

# Exceptions
from pglockguard.exceptions import (
    InvalidLockModeError,
    InvalidMigrationError,
    InvalidTableCollectionError,
    LockEscalationError,
    LockGuardError,
    NestedLockError,
    UndefinedTableError,
)

# Blocking transactions
from pglockguard.blocking import (
    BlockingTransactionScanner,
    BlockingTransactionsReporter,
    LongRunningTransaction,
    find_blocking_transactions,
)

# Relations
from pglockguard.relations import TableCollection, TableReference

__all__ = [
    "__version__",
    # Locks
    "LockMode",
    "LockAcquisitionCoordinator",
    "LockScope",
    "LockAttemptOutcome",
    "AcquisitionContext",
    "adjust_timeout",
    "adjust_lock_timeout",
    "adjust_statement_timeout",
    # Relations
    "TableReference",
    "TableCollection",
    # Blocking transactions
    "BlockingTransactionScanner",
    "BlockingTransactionsReporter",
    "LongRunningTransaction",
    "find_blocking_transactions",
    # Configuration
    "LockConfig",
    # Exceptions
    "LockGuardError",
    "InvalidLockModeError",
    "InvalidTableCollectionError",
    "UndefinedTableError",
    "InvalidMigrationError",
    "NestedLockError",
    "LockEscalationError",
]
