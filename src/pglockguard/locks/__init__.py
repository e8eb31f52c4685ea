"""
Table lock modes and safe lock acquisition.

Example:
    >>> from pglockguard.locks import LockAcquisitionCoordinator, LockMode
    >>>
    >>> coordinator = LockAcquisitionCoordinator(conn)
    >>> async with coordinator.acquire("orders", mode=LockMode.SHARE):
    ...     await backfill_orders(conn)
"""

from pglockguard.locks.coordinator import (
    AcquisitionContext,
    LockAcquisitionCoordinator,
    LockAttemptOutcome,
    LockScope,
    lock_statement,
)
from pglockguard.locks.modes import LockMode
from pglockguard.locks.timeouts import (
    adjust_lock_timeout,
    adjust_statement_timeout,
    adjust_timeout,
    fast_fail_setting,
    is_timeout_error,
)

__all__ = [
    "AcquisitionContext",
    "LockAcquisitionCoordinator",
    "LockAttemptOutcome",
    "LockMode",
    "LockScope",
    "adjust_lock_timeout",
    "adjust_statement_timeout",
    "adjust_timeout",
    "fast_fail_setting",
    "is_timeout_error",
    "lock_statement",
]
