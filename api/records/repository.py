"""
Root-row persistence (raw SQL).

Table and column names come from the catalog and are quoted; limit and
offset are parameters.
"""

from __future__ import annotations

from typing import Any, Sequence

from includes.loader import QueryExecutor
from includes.sql import merge_ordering, order_clause, quote_ident


async def list_rows(
    executor: QueryExecutor,
    entity: str,
    *,
    primary_key: Sequence[str],
    ordering: Sequence[tuple[str, str]] = (),
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """
    List one page of rows of `entity`, ordered by `ordering` and then by
    primary key so pages are stable.
    """
    order = order_clause(merge_ordering(ordering, [(c, "asc") for c in primary_key]))
    return await executor.fetch_all(
        f"SELECT * FROM {quote_ident(entity)} {order} LIMIT $1 OFFSET $2",
        limit,
        offset,
    )
