"""
Standard span attributes for pglockguard.

These follow OpenTelemetry semantic conventions where applicable.

Example:
    >>> from pglockguard.observability.attributes import ATTR_LOCK_MODE, ATTR_LOCK_TABLES
    >>>
    >>> with tracer.span(
    ...     "pglockguard.lock.acquire",
    ...     {ATTR_LOCK_TABLES: '"public"."orders"', ATTR_LOCK_MODE: "share"},
    ... ):
    ...     pass
"""

# =============================================================================
# Database Attributes (OpenTelemetry Semantic Conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (always 'postgresql' here)."""

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_TABLES = "pglockguard.lock.tables"
"""Comma separated fully qualified names of the tables being locked (string)."""

ATTR_LOCK_MODE = "pglockguard.lock.mode"
"""Requested lock mode identifier, e.g. 'access_exclusive' (string)."""

ATTR_LOCK_REENTRANT = "pglockguard.lock.reentrant"
"""Whether the request was satisfied by an enclosing lock (boolean)."""

ATTR_LOCK_ATTEMPT = "pglockguard.lock.attempt"
"""1-based number of the LOCK TABLE attempt (integer)."""

ATTR_LOCK_TIMEOUT = "pglockguard.lock.timeout"
"""Fast-fail timeout applied to the attempt, in seconds (float)."""

# =============================================================================
# Blocking Transaction Attributes
# =============================================================================

ATTR_MIN_TRANSACTION_AGE = "pglockguard.blocking.min_transaction_age"
"""Minimum transaction age used by the scan, in seconds (float)."""

ATTR_BLOCKING_COUNT = "pglockguard.blocking.count"
"""Number of long running transactions found (integer)."""


__all__ = [
    "ATTR_DB_SYSTEM",
    "ATTR_LOCK_TABLES",
    "ATTR_LOCK_MODE",
    "ATTR_LOCK_REENTRANT",
    "ATTR_LOCK_ATTEMPT",
    "ATTR_LOCK_TIMEOUT",
    "ATTR_MIN_TRANSACTION_AGE",
    "ATTR_BLOCKING_COUNT",
]
