"""
Tracer used by the scanner and the lock coordinator.

Components take a tracer as a dependency instead of talking to OpenTelemetry
directly. Every span they open describes PostgreSQL work, so the tracers add
``db.system = postgresql`` to each span themselves.

Example:
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("pglockguard.lock.acquire", {ATTR_LOCK_MODE: "share"}) as span:
    ...     if span is not None:
    ...         span.set_attribute(ATTR_LOCK_REENTRANT, False)
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from typing import Any, NamedTuple, Protocol, runtime_checkable

from pglockguard.observability.attributes import ATTR_DB_SYSTEM

# Optional OpenTelemetry import - single source of truth
try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]

BASE_ATTRIBUTES: dict[str, Any] = {ATTR_DB_SYSTEM: "postgresql"}


def _with_base(attributes: dict[str, Any] | None) -> dict[str, Any]:
    return {**BASE_ATTRIBUTES, **(attributes or {})}


@runtime_checkable
class Tracer(Protocol):
    """
    Anything that can open a span around a unit of database work.

    The context manager yields an object with ``set_attribute`` for
    attributes only known once the work is done, or None when spans are not
    recorded.
    """

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Any]: ...


class NullTracer:
    """Tracer used when tracing is disabled or OpenTelemetry is missing."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None


class OpenTelemetryTracer:
    """
    Opens OpenTelemetry spans on the tracer named ``tracer_name``.

    Raises:
        ImportError: If OpenTelemetry is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace

        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Any]:
        return self._tracer.start_as_current_span(name, attributes=_with_base(attributes))


class RecordedSpan(NamedTuple):
    """A span captured by MockTracer, including attributes set while open."""

    name: str
    attributes: dict[str, Any]

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value


class MockTracer:
    """
    Tracer for tests. Records every span in the order it was opened.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("pglockguard.lock.attempt", {ATTR_LOCK_ATTEMPT: 1}):
        ...     pass
        >>> tracer.span_names
        ['pglockguard.lock.attempt']
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[RecordedSpan, None, None]:
        recorded = RecordedSpan(name, _with_base(attributes))
        self.spans.append(recorded)
        yield recorded

    @property
    def span_names(self) -> list[str]:
        return [span.name for span in self.spans]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(
    name: str,
    enable_tracing: bool = True,
) -> Tracer:
    """
    Create an OpenTelemetryTracer when enabled and available, else a NullTracer.

    Example:
        >>> self._tracer = tracer or create_tracer(__name__, config.enable_tracing)
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "BASE_ATTRIBUTES",
    "OTEL_AVAILABLE",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "create_tracer",
]
