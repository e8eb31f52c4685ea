"""
References to PostgreSQL tables and collections of them.

A TableReference points at an actual relation in PostgreSQL. Its optional
mode is metadata describing either a lock that has already been acquired or
one we are looking to acquire. Equality only looks at the relation identity
(name and schema); use ``conflicts_with`` when lock modes matter.

Example:
    >>> orders = TableReference("orders", "public", LockMode.SHARE)
    >>> orders.fully_qualified_name
    '"public"."orders"'
    >>> TableCollection([orders, orders]).to_sql()
    '"public"."orders"'
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from pglockguard.exceptions import InvalidTableCollectionError, UndefinedTableError
from pglockguard.locks.modes import LockMode

logger = logging.getLogger(__name__)

_SCHEMA_FOR_QUALIFIED_TABLE = text(
    """
    SELECT schemaname
    FROM pg_tables
    WHERE tablename = :name AND schemaname = :schema
    LIMIT 1
    """
)

_SCHEMA_FROM_SEARCH_PATH = text(
    """
    SELECT schemaname
    FROM pg_tables
    WHERE tablename = :name AND schemaname = ANY (current_schemas(false))
    ORDER BY array_position(current_schemas(false), schemaname)
    LIMIT 1
    """
)

# pg_inherits covers both native partitions and inheritance-based children
_DESCENDANTS = text(
    """
    WITH RECURSIVE descendants AS (
        SELECT pg_inherits.inhrelid AS oid, 1 AS depth
        FROM pg_inherits
          JOIN pg_class parent        ON pg_inherits.inhparent = parent.oid
          JOIN pg_namespace parent_ns ON parent.relnamespace = parent_ns.oid
        WHERE parent.relname = :name
          AND parent_ns.nspname = :schema
      UNION ALL
        SELECT pg_inherits.inhrelid, descendants.depth + 1
        FROM pg_inherits
          JOIN descendants ON pg_inherits.inhparent = descendants.oid
        WHERE :recursive
    )
    SELECT child.relname AS name, child_ns.nspname AS schema
    FROM descendants
      JOIN pg_class child        ON descendants.oid = child.oid
      JOIN pg_namespace child_ns ON child.relnamespace = child_ns.oid
    ORDER BY descendants.depth, child.oid
    """
)


def quote_ident(identifier: str) -> str:
    """
    Quote an SQL identifier, doubling any embedded double quotes.

    Example:
        >>> quote_ident('we"ird')
        '"we""ird"'
    """
    return '"' + identifier.replace('"', '""') + '"'


def split_qualified_name(table_name: str) -> tuple[str | None, str]:
    """
    Split a possibly schema-qualified, possibly quoted table name.

    Unquoted parts are folded to lower case the way PostgreSQL folds them.

    Args:
        table_name: A name such as ``orders``, ``public.orders`` or
            ``"Sales"."Orders"``

    Returns:
        Tuple of (schema or None, table name)

    Raises:
        ValueError: If the name is empty or has more than two parts
    """
    parts: list[str] = []
    current: list[str] = []
    quoted = False
    in_quotes = False
    index = 0
    while index < len(table_name):
        char = table_name[index]
        if in_quotes:
            if char == '"':
                if table_name[index + 1 : index + 2] == '"':
                    current.append('"')
                    index += 1
                else:
                    in_quotes = False
            else:
                current.append(char)
        elif char == '"':
            in_quotes = True
            quoted = True
        elif char == ".":
            parts.append(_finish_part(current, quoted))
            current, quoted = [], False
        else:
            current.append(char)
        index += 1
    parts.append(_finish_part(current, quoted))

    if len(parts) > 2 or not all(parts):
        raise ValueError(f"Invalid table name: {table_name!r}")
    if len(parts) == 1:
        return None, parts[0]
    return parts[0], parts[1]


def _finish_part(chars: list[str], quoted: bool) -> str:
    part = "".join(chars)
    return part if quoted else part.strip().lower()


@dataclass(frozen=True, eq=False)
class TableReference:
    """
    A schema-qualified table plus an optional requested or held lock mode.

    Attributes:
        name: Table name (unquoted)
        schema: Schema name (unquoted)
        mode: Lock mode associated with this reference, or None when no
              specific mode has been requested yet
    """

    name: str
    schema: str
    mode: LockMode | None = field(default=None)

    def __post_init__(self) -> None:
        if self.mode is not None and not isinstance(self.mode, LockMode):
            object.__setattr__(self, "mode", LockMode(self.mode))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TableReference):
            return NotImplemented
        return (self.name, self.schema) == (other.name, other.schema)

    def __hash__(self) -> int:
        return hash((self.name, self.schema))

    def __repr__(self) -> str:
        mode = f", mode={self.mode.value}" if self.mode else ""
        return f"TableReference({self.fully_qualified_name}{mode})"

    @property
    def fully_qualified_name(self) -> str:
        """Schema and table name, both double-quoted."""
        return f"{quote_ident(self.schema)}.{quote_ident(self.name)}"

    def conflicts_with(self, other: TableReference) -> bool:
        """
        Check whether a lock described by ``other`` would block this one.

        A missing mode on either side is treated as conflicting, since
        nothing is known about what that side needs.
        """
        return self == other and (
            self.mode is None or other.mode is None or self.mode.conflicts_with(other.mode)
        )

    def with_mode(self, mode: LockMode | str | None) -> TableReference:
        """Return a copy of this reference carrying ``mode``."""
        return replace(self, mode=mode)

    @classmethod
    async def from_table_name(
        cls,
        conn: AsyncConnection,
        table_name: str,
        mode: LockMode | str | None = None,
    ) -> TableReference:
        """
        Resolve a table name against the database catalog.

        Unqualified names are looked up in the current search path and the
        first matching schema (in search path order) wins.

        Args:
            conn: Connection used for the catalog lookup
            table_name: Plain or schema-qualified table name
            mode: Optional lock mode to attach to the reference

        Returns:
            TableReference for the resolved table

        Raises:
            UndefinedTableError: If no such table exists
        """
        schema, name = split_qualified_name(table_name)
        if schema is None:
            result = await conn.execute(_SCHEMA_FROM_SEARCH_PATH, {"name": name})
        else:
            result = await conn.execute(
                _SCHEMA_FOR_QUALIFIED_TABLE, {"name": name, "schema": schema}
            )
        resolved = result.scalar_one_or_none()

        if resolved is None:
            quoted = quote_ident(name)
            if schema is not None:
                quoted = f"{quote_ident(schema)}.{quoted}"
            raise UndefinedTableError(quoted, schema)

        return cls(name, resolved, mode)

    async def partitions(
        self,
        conn: AsyncConnection,
        *,
        include_sub_partitions: bool = False,
        include_self: bool = False,
    ) -> list[TableReference]:
        """
        List child tables of this table.

        Both native partitions and inheritance children are returned, each
        carrying this reference's mode.

        Args:
            conn: Connection used for the catalog lookup
            include_sub_partitions: Descend into children of children
            include_self: Put this reference first in the result
        """
        result = await conn.execute(
            _DESCENDANTS,
            {"name": self.name, "schema": self.schema, "recursive": include_sub_partitions},
        )
        tables = [
            type(self)(row["name"], row["schema"], self.mode) for row in result.mappings().all()
        ]
        if include_self:
            tables.insert(0, self)
        return tables


class TableCollection:
    """
    Ordered, duplicate-free set of tables sharing one lock mode.

    Either every member has no mode or every member has the same mode.

    Raises:
        InvalidTableCollectionError: If the collection is empty or members
            carry different lock modes

    Example:
        >>> a = TableReference("a", "public")
        >>> b = TableReference("b", "public")
        >>> TableCollection([a, b, a]).to_sql()
        '"public"."a", "public"."b"'
    """

    def __init__(self, tables: Iterable[TableReference]) -> None:
        self._tables: dict[TableReference, None] = dict.fromkeys(tables)

        if not self._tables:
            raise InvalidTableCollectionError("Expected a non-empty list of tables")

        if len({table.mode for table in self._tables}) > 1:
            raise InvalidTableCollectionError(
                "Expected all tables in collection to have the same lock mode"
            )

    @classmethod
    async def from_table_names(
        cls,
        conn: AsyncConnection,
        table_names: Iterable[str | TableReference],
        mode: LockMode | str | None = None,
    ) -> TableCollection:
        """
        Build a collection by resolving table names in the catalog.

        TableReference items are taken as already resolved and only get
        ``mode`` attached.
        """
        tables: list[TableReference] = []
        for table in table_names:
            if isinstance(table, TableReference):
                tables.append(table.with_mode(mode))
            else:
                tables.append(await TableReference.from_table_name(conn, table, mode))
        return cls(tables)

    @property
    def mode(self) -> LockMode | None:
        """The lock mode shared by every member."""
        return next(iter(self._tables)).mode

    def __iter__(self) -> Iterator[TableReference]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, item: object) -> bool:
        return item in self._tables

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TableCollection):
            return NotImplemented
        return self._tables.keys() == other._tables.keys()

    def __hash__(self) -> int:
        return hash(frozenset(self._tables))

    def __repr__(self) -> str:
        mode = self.mode.value if self.mode else None
        return f"TableCollection([{self.to_sql()}], mode={mode})"

    def subset(self, other: TableCollection) -> bool:
        """Return True if every table here is also in ``other``."""
        return self._tables.keys() <= other._tables.keys()

    def to_sql(self) -> str:
        """Comma-separated fully qualified names, for use in a LOCK statement."""
        return ", ".join(table.fully_qualified_name for table in self._tables)

    async def with_partitions(self, conn: AsyncConnection) -> TableCollection:
        """
        Return a collection extended with every partition descendant.

        Each descendant inherits its parent's mode, so the result keeps the
        single-mode invariant.
        """
        tables: list[TableReference] = []
        for table in self._tables:
            tables.extend(
                await table.partitions(conn, include_sub_partitions=True, include_self=True)
            )

        if len(tables) > len(self._tables):
            logger.debug("Expanded %s to include partitions: %s", self.to_sql(), tables)

        return type(self)(tables)


__all__ = [
    "TableReference",
    "TableCollection",
    "quote_ident",
    "split_qualified_name",
]
