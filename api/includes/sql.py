"""
SQL fragments for batched include queries.

Parameter style follows asyncpg ($1, $2, ...). Identifiers are always
quoted; values always go through parameters.

Limit: a composite-key batch binds one parameter per key column per key,
and batches are not split. Postgres rejects statements with more than
32767 parameters, so a two-column key tops out near 16k distinct parent
keys per relation. Single-column keys bind one array and have no such limit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

Key = tuple[Any, ...]


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def key_predicate(columns: Sequence[str], keys: Sequence[Key], *, start: int = 1) -> tuple[str, list[Any]]:
    """
    Membership test of `columns` against a batch of key tuples.

    Single column: `"c" = ANY($1)` with the values passed as one array.
    Composite:     `("a" = $1 AND "b" = $2) OR ("a" = $3 AND "b" = $4) ...`
    """
    if len(columns) == 1:
        return f"{quote_ident(columns[0])} = ANY(${start})", [[k[0] for k in keys]]

    groups: list[str] = []
    params: list[Any] = []
    idx = start
    for key in keys:
        parts = [f"{quote_ident(c)} = ${idx + j}" for j, c in enumerate(columns)]
        groups.append("(" + " AND ".join(parts) + ")")
        params.extend(key)
        idx += len(columns)
    return " OR ".join(groups), params


def merge_ordering(*orderings: Iterable[tuple[str, str]]) -> tuple[tuple[str, str], ...]:
    """Concatenate orderings, keeping the first occurrence of each column."""
    seen: set[str] = set()
    out: list[tuple[str, str]] = []
    for ordering in orderings:
        for column, direction in ordering:
            if column in seen:
                continue
            seen.add(column)
            out.append((column, direction))
    return tuple(out)


def order_clause(ordering: Sequence[tuple[str, str]]) -> str:
    if not ordering:
        return ""
    return "ORDER BY " + ", ".join(f"{quote_ident(c)} {d.upper()}" for c, d in ordering)


def select_list(columns: Sequence[str] | None) -> str:
    if columns is None:
        return "*"
    return ", ".join(quote_ident(c) for c in columns)


@dataclass(frozen=True)
class BatchQuery:
    table: str
    key_columns: tuple[str, ...]
    keys: tuple[Key, ...]
    # None selects every column.
    columns: tuple[str, ...] | None = None
    ordering: tuple[tuple[str, str], ...] = ()

    def render(self) -> tuple[str, list[Any]]:
        where, params = key_predicate(self.key_columns, self.keys)
        sql = f"SELECT {select_list(self.columns)} FROM {quote_ident(self.table)} WHERE {where}"
        order = order_clause(self.ordering)
        if order:
            sql += " " + order
        return sql, params
