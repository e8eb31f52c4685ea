"""
PostgreSQL table lock modes.

The eight modes are declared in ascending strength. Strength order is only
used to detect lock escalation; whether two modes conflict is decided by the
explicit table below, which mirrors the PostgreSQL documentation's
"Conflicting Lock Modes" matrix.

Example:
    >>> LockMode("ACCESS EXCLUSIVE LOCK").to_sql()
    'ACCESS EXCLUSIVE'
    >>> LockMode("AccessShareLock").conflicts_with(LockMode.ACCESS_EXCLUSIVE)
    True
    >>> LockMode.SHARE < LockMode.EXCLUSIVE
    True
"""

from __future__ import annotations

import re
from enum import Enum

from pglockguard.exceptions import InvalidLockModeError


class LockMode(Enum):
    """
    One of PostgreSQL's table-level lock strengths.

    Members are constructed from their canonical identifier or any common
    spelling of it: ``"share_row_exclusive"``, ``"SHARE ROW EXCLUSIVE"``,
    ``"ShareRowExclusiveLock"`` (as reported by ``pg_locks.mode``) and
    ``"share row exclusive lock"`` all produce ``SHARE_ROW_EXCLUSIVE``.
    """

    ACCESS_SHARE = "access_share"
    ROW_SHARE = "row_share"
    ROW_EXCLUSIVE = "row_exclusive"
    SHARE_UPDATE_EXCLUSIVE = "share_update_exclusive"
    SHARE = "share"
    SHARE_ROW_EXCLUSIVE = "share_row_exclusive"
    EXCLUSIVE = "exclusive"
    ACCESS_EXCLUSIVE = "access_exclusive"

    @classmethod
    def _missing_(cls, value: object) -> LockMode:
        normalized = _normalize(value)
        for member in cls:
            if member.value == normalized:
                return member
        raise InvalidLockModeError(value, [member.value for member in cls])

    @property
    def strength(self) -> int:
        """Position of this mode in ascending strength order (0-based)."""
        return _STRENGTH[self]

    @property
    def conflicting_modes(self) -> frozenset[LockMode]:
        """Modes that cannot be held by another session alongside this one."""
        return _CONFLICTS[self]

    def conflicts_with(self, other: LockMode) -> bool:
        """Return True if ``other`` cannot be granted while this mode is held."""
        return other in _CONFLICTS[self]

    def to_sql(self) -> str:
        """Render the mode as used in ``LOCK TABLE ... IN <mode> MODE``."""
        return self.value.upper().replace("_", " ")

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LockMode):
            return NotImplemented
        return self.strength < other.strength

    def __le__(self, other: object) -> bool:
        if not isinstance(other, LockMode):
            return NotImplemented
        return self.strength <= other.strength

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, LockMode):
            return NotImplemented
        return self.strength > other.strength

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, LockMode):
            return NotImplemented
        return self.strength >= other.strength


def _normalize(value: object) -> str:
    """
    Reduce a lock mode spelling to its canonical identifier.

    Examples:
        >>> _normalize("AccessExclusiveLock")
        'access_exclusive'
        >>> _normalize("SHARE UPDATE EXCLUSIVE")
        'share_update_exclusive'
    """
    if not isinstance(value, str):
        return ""
    # Split CamelCase ("RowExclusiveLock") before lowercasing
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", value.strip())
    name = re.sub(r"[\s\-_]+", "_", name).lower()
    return name.removesuffix("_lock")


_STRENGTH: dict[LockMode, int] = {mode: index for index, mode in enumerate(LockMode)}

_CONFLICTS: dict[LockMode, frozenset[LockMode]] = {
    LockMode.ACCESS_SHARE: frozenset({LockMode.ACCESS_EXCLUSIVE}),
    LockMode.ROW_SHARE: frozenset({LockMode.EXCLUSIVE, LockMode.ACCESS_EXCLUSIVE}),
    LockMode.ROW_EXCLUSIVE: frozenset(
        {
            LockMode.SHARE,
            LockMode.SHARE_ROW_EXCLUSIVE,
            LockMode.EXCLUSIVE,
            LockMode.ACCESS_EXCLUSIVE,
        }
    ),
    LockMode.SHARE_UPDATE_EXCLUSIVE: frozenset(
        {
            LockMode.SHARE_UPDATE_EXCLUSIVE,
            LockMode.SHARE,
            LockMode.SHARE_ROW_EXCLUSIVE,
            LockMode.EXCLUSIVE,
            LockMode.ACCESS_EXCLUSIVE,
        }
    ),
    LockMode.SHARE: frozenset(
        {
            LockMode.ROW_EXCLUSIVE,
            LockMode.SHARE_UPDATE_EXCLUSIVE,
            LockMode.SHARE_ROW_EXCLUSIVE,
            LockMode.EXCLUSIVE,
            LockMode.ACCESS_EXCLUSIVE,
        }
    ),
    LockMode.SHARE_ROW_EXCLUSIVE: frozenset(
        {
            LockMode.ROW_EXCLUSIVE,
            LockMode.SHARE_UPDATE_EXCLUSIVE,
            LockMode.SHARE,
            LockMode.SHARE_ROW_EXCLUSIVE,
            LockMode.EXCLUSIVE,
            LockMode.ACCESS_EXCLUSIVE,
        }
    ),
    LockMode.EXCLUSIVE: frozenset(
        {
            LockMode.ROW_SHARE,
            LockMode.ROW_EXCLUSIVE,
            LockMode.SHARE_UPDATE_EXCLUSIVE,
            LockMode.SHARE,
            LockMode.SHARE_ROW_EXCLUSIVE,
            LockMode.EXCLUSIVE,
            LockMode.ACCESS_EXCLUSIVE,
        }
    ),
    LockMode.ACCESS_EXCLUSIVE: frozenset(LockMode),
}


__all__ = ["LockMode"]
