"""
Declared table metadata and the relation graph built from it.

Mirrors `db/schema.sql`. The graph is built once per process.
"""

from __future__ import annotations

from functools import lru_cache

from includes.graph import ForeignKey, RelationGraph, TableSpec, build_graph

TABLES: tuple[TableSpec, ...] = (
    TableSpec(
        name="authors",
        primary_key=("id",),
        columns=("id", "name"),
    ),
    TableSpec(
        name="books",
        primary_key=("id",),
        columns=("id", "author_id", "title", "published_at"),
        foreign_keys=(ForeignKey(("author_id",), "authors", ("id",)),),
    ),
    TableSpec(
        name="tags",
        primary_key=("id",),
        columns=("id", "name"),
    ),
    TableSpec(
        name="book_tags",
        primary_key=("book_id", "tag_id"),
        columns=("book_id", "tag_id"),
        foreign_keys=(
            ForeignKey(("book_id",), "books", ("id",)),
            ForeignKey(("tag_id",), "tags", ("id",)),
        ),
    ),
)


@lru_cache(maxsize=1)
def relation_graph() -> RelationGraph:
    return build_graph(TABLES)
