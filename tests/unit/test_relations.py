"""
Unit tests for TableReference and TableCollection.

Tests for:
- Identity semantics (equality ignores mode)
- Quoting and name splitting
- Conflict checks between references
- Collection validation, deduplication and SQL rendering
- Catalog lookups against a scripted connection
"""

from __future__ import annotations

import pytest

from pglockguard.exceptions import InvalidTableCollectionError, UndefinedTableError
from pglockguard.locks.modes import LockMode
from pglockguard.relations import (
    TableCollection,
    TableReference,
    quote_ident,
    split_qualified_name,
)
from tests.fixtures import FakeConnection


class TestQuoting:
    """Tests for identifier helpers."""

    def test_quote_ident(self) -> None:
        assert quote_ident("orders") == '"orders"'
        assert quote_ident('we"ird') == '"we""ird"'

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("orders", (None, "orders")),
            ("Orders", (None, "orders")),
            ("sales.orders", ("sales", "orders")),
            ('"Sales"."Orders"', ("Sales", "Orders")),
            ('"with.dot"', (None, "with.dot")),
            ('"we""ird"', (None, 'we"ird')),
        ],
    )
    def test_split_qualified_name(self, name: str, expected: tuple[str | None, str]) -> None:
        assert split_qualified_name(name) == expected

    @pytest.mark.parametrize("name", ["", "a.b.c", "a.", ".b"])
    def test_split_rejects_invalid_names(self, name: str) -> None:
        with pytest.raises(ValueError):
            split_qualified_name(name)


class TestTableReference:
    """Tests for TableReference."""

    def test_equality_ignores_mode(self) -> None:
        a = TableReference("foo", "public", LockMode.SHARE)
        b = TableReference("foo", "public", LockMode.EXCLUSIVE)
        assert a == b
        assert hash(a) == hash(b)

    def test_schema_is_part_of_identity(self) -> None:
        assert TableReference("foo", "public") != TableReference("foo", "other")

    def test_string_mode_is_coerced(self) -> None:
        assert TableReference("foo", "public", "ShareLock").mode is LockMode.SHARE

    def test_invalid_mode_raises(self) -> None:
        with pytest.raises(ValueError):
            TableReference("foo", "public", "sharing")

    def test_fully_qualified_name(self) -> None:
        assert TableReference("foo", "public").fully_qualified_name == '"public"."foo"'
        assert TableReference('f"oo', "my schema").fully_qualified_name == '"my schema"."f""oo"'

    def test_is_frozen(self) -> None:
        table = TableReference("foo", "public")
        with pytest.raises(AttributeError):
            table.name = "bar"  # type: ignore[misc]

    def test_with_mode(self) -> None:
        table = TableReference("foo", "public")
        locked = table.with_mode("share")
        assert locked.mode is LockMode.SHARE
        assert table.mode is None
        assert locked == table

    def test_conflicts_with_requires_same_relation(self) -> None:
        held = TableReference("foo", "public", LockMode.ACCESS_EXCLUSIVE)
        assert not held.conflicts_with(TableReference("bar", "public", LockMode.ACCESS_SHARE))

    def test_conflicts_with_uses_conflict_matrix(self) -> None:
        held = TableReference("foo", "public", LockMode.ACCESS_SHARE)
        assert not held.conflicts_with(TableReference("foo", "public", LockMode.EXCLUSIVE))
        assert held.conflicts_with(TableReference("foo", "public", LockMode.ACCESS_EXCLUSIVE))

    def test_missing_mode_conflicts(self) -> None:
        held = TableReference("foo", "public")
        assert held.conflicts_with(TableReference("foo", "public", LockMode.ACCESS_SHARE))


class TestTableReferenceCatalog:
    """Tests for catalog backed constructors."""

    async def test_from_table_name_uses_search_path(self, fake_conn: FakeConnection) -> None:
        fake_conn.on("current_schemas", rows=[{"schemaname": "app"}])

        table = await TableReference.from_table_name(fake_conn, "orders", "share")

        assert table == TableReference("orders", "app")
        assert table.mode is LockMode.SHARE
        assert fake_conn.parameters[-1] == {"name": "orders"}

    async def test_from_table_name_qualified(self, fake_conn: FakeConnection) -> None:
        table = await TableReference.from_table_name(fake_conn, "sales.orders")

        assert table == TableReference("orders", "sales")
        assert fake_conn.parameters[-1] == {"name": "orders", "schema": "sales"}

    async def test_from_table_name_missing_in_search_path(
        self, fake_conn: FakeConnection
    ) -> None:
        fake_conn.on("FROM pg_tables", rows=[])

        with pytest.raises(UndefinedTableError) as exc_info:
            await TableReference.from_table_name(fake_conn, "missing")

        assert str(exc_info.value) == 'Table "missing" does not exist in search path'

    async def test_from_table_name_missing_in_schema(self, fake_conn: FakeConnection) -> None:
        fake_conn.on("FROM pg_tables", rows=[])

        with pytest.raises(UndefinedTableError) as exc_info:
            await TableReference.from_table_name(fake_conn, "sales.missing")

        assert str(exc_info.value) == 'Table "sales"."missing" does not exist'

    async def test_partitions(self, fake_conn: FakeConnection) -> None:
        fake_conn.on(
            "pg_inherits",
            rows=[
                {"name": "events_2024", "schema": "public"},
                {"name": "events_2025", "schema": "public"},
            ],
        )
        parent = TableReference("events", "public", LockMode.SHARE)

        children = await parent.partitions(fake_conn, include_sub_partitions=True)

        assert [child.name for child in children] == ["events_2024", "events_2025"]
        assert all(child.mode is LockMode.SHARE for child in children)
        assert fake_conn.parameters[-1] == {
            "name": "events",
            "schema": "public",
            "recursive": True,
        }

    async def test_partitions_include_self(self, fake_conn: FakeConnection) -> None:
        parent = TableReference("events", "public")

        tables = await parent.partitions(fake_conn, include_self=True)

        assert tables == [parent]
        assert fake_conn.parameters[-1]["recursive"] is False  # type: ignore[index]


class TestTableCollection:
    """Tests for TableCollection."""

    def test_duplicates_collapse(self) -> None:
        foo = TableReference("foo", "public")
        assert len(TableCollection([foo, foo])) == 1

    def test_empty_raises(self) -> None:
        with pytest.raises(
            InvalidTableCollectionError, match="Expected a non-empty list of tables"
        ):
            TableCollection([])

    def test_mixed_modes_raise(self) -> None:
        with pytest.raises(
            InvalidTableCollectionError,
            match="Expected all tables in collection to have the same lock mode",
        ):
            TableCollection(
                [
                    TableReference("foo", "public", LockMode.SHARE),
                    TableReference("bar", "public", LockMode.EXCLUSIVE),
                ]
            )

    def test_collection_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            TableCollection([])

    def test_mode(self) -> None:
        tables = TableCollection([TableReference("foo", "public", "share")])
        assert tables.mode is LockMode.SHARE
        assert TableCollection([TableReference("foo", "public")]).mode is None

    def test_to_sql_keeps_insertion_order(self) -> None:
        tables = TableCollection(
            [
                TableReference("zeta", "public"),
                TableReference("alpha", "public"),
                TableReference("zeta", "public"),
            ]
        )
        assert tables.to_sql() == '"public"."zeta", "public"."alpha"'

    def test_subset(self) -> None:
        foo = TableReference("foo", "public")
        bar = TableReference("bar", "public")
        both = TableCollection([foo, bar])

        assert TableCollection([foo]).subset(both)
        assert both.subset(both)
        assert not both.subset(TableCollection([foo]))

    def test_subset_ignores_mode(self) -> None:
        held = TableCollection([TableReference("foo", "public", "access_exclusive")])
        requested = TableCollection([TableReference("foo", "public", "share")])
        assert requested.subset(held)

    def test_membership_and_equality(self) -> None:
        foo = TableReference("foo", "public")
        bar = TableReference("bar", "public")

        assert foo in TableCollection([foo])
        assert bar not in TableCollection([foo])
        assert TableCollection([foo, bar]) == TableCollection([bar, foo])
        assert list(TableCollection([foo, bar])) == [foo, bar]

    async def test_from_table_names(self, fake_conn: FakeConnection) -> None:
        resolved = TableReference("bar", "sales")

        tables = await TableCollection.from_table_names(
            fake_conn, ["foo", resolved], LockMode.EXCLUSIVE
        )

        assert list(tables) == [TableReference("foo", "public"), resolved]
        assert tables.mode is LockMode.EXCLUSIVE

    async def test_with_partitions(self, fake_conn: FakeConnection) -> None:
        fake_conn.on(
            "pg_inherits",
            rows=[{"name": "events_2024", "schema": "public"}],
            times=1,
        )
        tables = TableCollection(
            [
                TableReference("events", "public", "share"),
                TableReference("users", "public", "share"),
            ]
        )

        expanded = await tables.with_partitions(fake_conn)

        assert expanded.to_sql() == '"public"."events", "public"."events_2024", "public"."users"'
        assert expanded.mode is LockMode.SHARE
        assert tables.subset(expanded)
