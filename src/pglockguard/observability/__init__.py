"""
Observability utilities for pglockguard.

Provides the composition-based Tracer used by the scanner and coordinator,
plus standard span attribute names.

Note:
    OpenTelemetry is an optional dependency. All utilities in this module
    gracefully handle the case where OpenTelemetry is not installed.
"""

from pglockguard.observability.attributes import (
    ATTR_BLOCKING_COUNT,
    ATTR_DB_SYSTEM,
    ATTR_LOCK_ATTEMPT,
    ATTR_LOCK_MODE,
    ATTR_LOCK_REENTRANT,
    ATTR_LOCK_TABLES,
    ATTR_LOCK_TIMEOUT,
    ATTR_MIN_TRANSACTION_AGE,
)
from pglockguard.observability.tracer import (
    BASE_ATTRIBUTES,
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    Tracer,
    create_tracer,
)

__all__ = [
    "OTEL_AVAILABLE",
    # Tracer (composition-based API)
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "BASE_ATTRIBUTES",
    "create_tracer",
    # Attributes
    "ATTR_DB_SYSTEM",
    "ATTR_LOCK_TABLES",
    "ATTR_LOCK_MODE",
    "ATTR_LOCK_REENTRANT",
    "ATTR_LOCK_ATTEMPT",
    "ATTR_LOCK_TIMEOUT",
    "ATTR_MIN_TRANSACTION_AGE",
    "ATTR_BLOCKING_COUNT",
]
