"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import re
from typing import Any

import pytest

from includes.graph import ForeignKey, TableSpec, build_graph
from records import catalog

_TABLE = re.compile(r'FROM "(\w+)"')
_SELECT = re.compile(r"^SELECT (.+?) FROM ")
_WHERE = re.compile(r" WHERE (.+?)(?: ORDER BY | LIMIT |$)")
_ORDER = re.compile(r" ORDER BY (.+?)(?: LIMIT |$)")
_LIMIT = re.compile(r" LIMIT \$(\d+) OFFSET \$(\d+)")
_ANY = re.compile(r'^"(\w+)" = ANY\(\$(\d+)\)$')
_EQ = re.compile(r'"(\w+)" = \$(\d+)')
_COLUMN = re.compile(r'"(\w+)"')
_ORDER_TERM = re.compile(r'"(\w+)" (ASC|DESC)')


class FakeDatabase:
    """
    In-memory stand-in for the asyncpg executor.

    Understands the statement shapes produced by `includes.sql` and
    `records.repository`: column lists, `= ANY($n)` and OR-of-AND key
    predicates, ORDER BY, LIMIT/OFFSET.
    """

    def __init__(self, tables: dict[str, list[dict[str, Any]]], *, delay: float = 0.0) -> None:
        self.tables = {name: [dict(r) for r in rows] for name, rows in tables.items()}
        self.delay = delay
        self.queries: list[tuple[str, tuple[Any, ...]]] = []
        self.failing: dict[str, Exception] = {}
        self.completed: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def fail(self, table: str, exc: Exception | None = None) -> None:
        self.failing[table] = exc or RuntimeError(f'relation "{table}" is unavailable')

    def tables_queried(self) -> list[str]:
        return [_TABLE.search(sql).group(1) for sql, _ in self.queries]

    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        self.queries.append((sql, args))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            table = _TABLE.search(sql).group(1)
            if table in self.failing:
                raise self.failing[table]
            rows = [dict(r) for r in self.tables[table]]
            rows = self._where(sql, args, rows)
            rows = self._order(sql, rows)
            rows = self._limit(sql, args, rows)
            self.completed.append(table)
            return self._project(sql, rows)
        finally:
            self.in_flight -= 1

    @staticmethod
    def _where(sql: str, args: tuple[Any, ...], rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        match = _WHERE.search(sql)
        if match is None:
            return rows
        where = match.group(1)

        single = _ANY.match(where)
        if single is not None:
            column, idx = single.group(1), int(single.group(2))
            values = args[idx - 1]
            return [r for r in rows if r.get(column) in values]

        groups = []
        for group in where.split(" OR "):
            groups.append({c: args[int(i) - 1] for c, i in _EQ.findall(group)})
        return [r for r in rows if any(all(r.get(c) == v for c, v in g.items()) for g in groups)]

    @staticmethod
    def _order(sql: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        match = _ORDER.search(sql)
        if match is None:
            return rows
        for column, direction in reversed(_ORDER_TERM.findall(match.group(1))):
            rows.sort(key=lambda r: r[column], reverse=direction == "DESC")
        return rows

    @staticmethod
    def _limit(sql: str, args: tuple[Any, ...], rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        match = _LIMIT.search(sql)
        if match is None:
            return rows
        limit = args[int(match.group(1)) - 1]
        offset = args[int(match.group(2)) - 1]
        return rows[offset:offset + limit]

    @staticmethod
    def _project(sql: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        select = _SELECT.match(sql).group(1)
        if select == "*":
            return rows
        columns = _COLUMN.findall(select)
        return [{c: r[c] for c in columns if c in r} for r in rows]


LIBRARY = {
    "authors": [
        {"id": 1, "name": "Ada"},
        {"id": 2, "name": "Brook"},
    ],
    "books": [
        {"id": 10, "author_id": 1, "title": "Alpha", "published_at": "2001-01-01"},
        {"id": 11, "author_id": 1, "title": "Beta", "published_at": "1999-05-05"},
    ],
    "tags": [
        {"id": 100, "name": "fiction"},
        {"id": 101, "name": "classic"},
    ],
    "book_tags": [
        {"book_id": 10, "tag_id": 100},
        {"book_id": 10, "tag_id": 101},
        {"book_id": 11, "tag_id": 100},
    ],
}


@pytest.fixture
def graph():
    return catalog.relation_graph()


@pytest.fixture
def library_db():
    return FakeDatabase(LIBRARY)


@pytest.fixture
def authors(library_db):
    return [dict(r) for r in library_db.tables["authors"]]


# -- Extra shapes: has-one, composite keys, non-unique junctions -------------

SHOP_TABLES = (
    TableSpec(name="users", primary_key=("id",), columns=("id", "email")),
    TableSpec(
        name="profiles",
        primary_key=("id",),
        columns=("id", "user_id", "bio"),
        foreign_keys=(ForeignKey(("user_id",), "users", ("id",), unique=True),),
    ),
    TableSpec(name="orders", primary_key=("region", "number"), columns=("region", "number", "total")),
    TableSpec(
        name="order_lines",
        primary_key=("region", "order_number", "line"),
        columns=("region", "order_number", "line", "sku"),
        foreign_keys=(ForeignKey(("region", "order_number"), "orders", ("region", "number")),),
    ),
    TableSpec(name="playlists", primary_key=("id",), columns=("id", "title")),
    TableSpec(name="songs", primary_key=("id",), columns=("id", "title", "seconds")),
    TableSpec(
        name="playlist_entries",
        primary_key=("id",),
        columns=("id", "playlist_id", "song_id"),
        junction=True,
        foreign_keys=(
            ForeignKey(("playlist_id",), "playlists", ("id",)),
            ForeignKey(("song_id",), "songs", ("id",)),
        ),
    ),
)

SHOP = {
    "users": [{"id": 1, "email": "a@example.com"}, {"id": 2, "email": "b@example.com"}],
    "profiles": [{"id": 7, "user_id": 1, "bio": "hello"}],
    "orders": [
        {"region": "eu", "number": 1, "total": 30},
        {"region": "us", "number": 1, "total": 12},
    ],
    "order_lines": [
        {"region": "eu", "order_number": 1, "line": 1, "sku": "A"},
        {"region": "eu", "order_number": 1, "line": 2, "sku": "B"},
        {"region": "us", "order_number": 1, "line": 1, "sku": "C"},
    ],
    "playlists": [{"id": 1, "title": "road"}, {"id": 2, "title": "empty"}],
    "songs": [
        {"id": 5, "title": "Echo", "seconds": 200},
        {"id": 6, "title": "Drift", "seconds": 150},
    ],
    "playlist_entries": [
        {"id": 1, "playlist_id": 1, "song_id": 5},
        {"id": 2, "playlist_id": 1, "song_id": 6},
        {"id": 3, "playlist_id": 1, "song_id": 5},
    ],
}


@pytest.fixture
def shop_graph():
    return build_graph(SHOP_TABLES)


@pytest.fixture
def shop_db():
    return FakeDatabase(SHOP)
