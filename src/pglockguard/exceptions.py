"""Library exceptions for the pglockguard package."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pglockguard.locks.modes import LockMode
    from pglockguard.relations import TableCollection


class LockGuardError(Exception):
    """Base exception for pglockguard library."""

    pass


class InvalidLockModeError(LockGuardError, ValueError):
    """Raised when a string cannot be interpreted as a PostgreSQL lock mode."""

    def __init__(self, value: object, valid_modes: list[str]) -> None:
        self.value = value
        self.valid_modes = valid_modes
        super().__init__(f"Unrecognized lock mode {value!r}. Valid modes: {valid_modes}")


class InvalidTableCollectionError(LockGuardError, ValueError):
    """Raised when a table collection is empty or mixes lock modes."""

    pass


class UndefinedTableError(LockGuardError):
    """Raised when a table name cannot be resolved to an existing table."""

    def __init__(self, table_name: str, schema: str | None = None) -> None:
        self.table_name = table_name
        self.schema = schema
        location = "" if schema else " in search path"
        super().__init__(f"Table {table_name} does not exist{location}")


class InvalidMigrationError(LockGuardError):
    """
    Raised when a migration describes an incoherent locking request.

    These errors indicate a bug in the calling migration and are never retried.
    """

    pass


class NestedLockError(InvalidMigrationError):
    """
    Raised when a nested acquisition asks for tables outside the enclosing lock.

    Attributes:
        requested: The collection the nested call asked for
        held: The collection currently locked by the enclosing scope
    """

    def __init__(self, requested: TableCollection, held: TableCollection) -> None:
        self.requested = requested
        self.held = held
        super().__init__(
            f"Nested lock detected! Cannot acquire lock on {requested.to_sql()} "
            f"while {held.to_sql()} is locked."
        )


class LockEscalationError(InvalidMigrationError):
    """
    Raised when a nested acquisition asks for a stronger mode than the one held.

    Attributes:
        held: The collection currently locked by the enclosing scope
        held_mode: The mode of the enclosing lock
        requested_mode: The stronger mode the nested call asked for
    """

    def __init__(
        self,
        held: TableCollection,
        held_mode: LockMode,
        requested_mode: LockMode,
    ) -> None:
        self.held = held
        self.held_mode = held_mode
        self.requested_mode = requested_mode
        super().__init__(
            f"Lock escalation detected! Cannot change lock level from "
            f"{held_mode.value} to {requested_mode.value} for {held.to_sql()}."
        )


__all__ = [
    "LockGuardError",
    "InvalidLockModeError",
    "InvalidTableCollectionError",
    "UndefinedTableError",
    "InvalidMigrationError",
    "NestedLockError",
    "LockEscalationError",
]
