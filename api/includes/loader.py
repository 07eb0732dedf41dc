"""
Batch loader: executes a compiled `Plan` against parent rows.

Every relation at a plan level costs one query (two for many_via_join),
whatever the number of parent rows. Levels are processed breadth-first:
all sibling relations of a level are loaded (concurrently, bounded by a
semaphore) before any nested level starts.

Failure policy: when a sibling fails, the other siblings of that level are
allowed to finish, then the first failure in plan order is raised as a
`QueryExecutionError`. Nothing is retried here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Iterable, Protocol, Sequence

from .errors import QueryExecutionError
from .graph import RelationGraph, RelationKind
from .plan import IncludeOptions, Plan, PlanNode
from .sql import BatchQuery, Key, merge_ordering

Row = dict[str, Any]

DEFAULT_CONCURRENCY = 4


class QueryExecutor(Protocol):
    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]: ...


def _key_of(row: Row, columns: Sequence[str]) -> Key | None:
    key = tuple(row.get(c) for c in columns)
    if any(v is None for v in key):
        return None
    return key


def _distinct_keys(rows: Iterable[Row], columns: Sequence[str]) -> tuple[Key, ...]:
    seen: dict[Key, None] = {}
    for row in rows:
        key = _key_of(row, columns)
        if key is not None:
            seen.setdefault(key, None)
    return tuple(seen)


def _group(rows: Iterable[Row], columns: Sequence[str]) -> dict[Key, list[Row]]:
    groups: dict[Key, list[Row]] = {}
    for row in rows:
        key = _key_of(row, columns)
        if key is not None:
            groups.setdefault(key, []).append(row)
    return groups


def _window(items: Sequence[Row], options: IncludeOptions) -> list[Row]:
    # Pagination is per parent: "first N children of this parent".
    end = options.offset + options.limit if options.limit is not None else None
    return list(items[options.offset:end])


def _ascending(columns: Iterable[str]) -> list[tuple[str, str]]:
    return [(c, "asc") for c in columns]


def _attached(rows: Iterable[Row], key: str) -> list[Row]:
    """Rows stitched under `key`, flattened across parents, each object once."""
    seen: set[int] = set()
    out: list[Row] = []
    for row in rows:
        value = row.get(key)
        if value is None:
            continue
        items = value if isinstance(value, list) else [value]
        for item in items:
            if id(item) not in seen:
                seen.add(id(item))
                out.append(item)
    return out


async def _gather_all(aws: Iterable[Awaitable[None]]) -> None:
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result


class BatchLoader:
    def __init__(
        self,
        graph: RelationGraph,
        executor: QueryExecutor,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        logger: logging.Logger | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._graph = graph
        self._executor = executor
        self._concurrency = concurrency
        self._logger = logger or logging.getLogger(__name__)

    async def stitch(self, entity: str, rows: Sequence[Row], plan: Plan) -> list[Row]:
        """
        Return copies of `rows` with one extra key per planned relation.

        `one` relations get the related row or None; `many` and
        `many_via_join` relations always get a list.
        """
        if plan.entity != entity:
            raise ValueError(f"Plan was compiled for '{plan.entity}', not '{entity}'.")

        out = [dict(row) for row in rows]
        if plan.is_empty or not out:
            return out

        # One semaphore per stitch call: the cap covers the whole tree.
        limiter = asyncio.Semaphore(self._concurrency)
        await self._stitch_level(out, plan, limiter)
        return out

    async def _stitch_level(self, rows: list[Row], plan: Plan, limiter: asyncio.Semaphore) -> None:
        if not rows or plan.is_empty:
            return
        self._logger.debug(
            "include_level entity=%s depth=%s relations=%s rows=%s",
            plan.entity,
            plan.depth,
            [node.key for node in plan.nodes],
            len(rows),
        )

        await _gather_all(self._load(rows, node, limiter) for node in plan.nodes)
        await _gather_all(
            self._stitch_level(_attached(rows, node.key), node.nested, limiter)
            for node in plan.nodes
            if node.nested is not None
        )

        for node in plan.nodes:
            self._project(_attached(rows, node.key), node)

    async def _load(self, rows: list[Row], node: PlanNode, limiter: asyncio.Semaphore) -> None:
        kind = node.relation.kind
        if kind is RelationKind.ONE:
            await self._load_one(rows, node, limiter)
        elif kind is RelationKind.MANY:
            await self._load_many(rows, node, limiter)
        elif kind is RelationKind.MANY_VIA_JOIN:
            await self._load_many_via_join(rows, node, limiter)
        else:
            raise AssertionError(f"Unhandled relation kind {kind!r}")

    async def _fetch(self, node: PlanNode, query: BatchQuery, limiter: asyncio.Semaphore) -> list[Row]:
        sql, params = query.render()
        self._logger.debug(
            "include_query entity=%s relation=%s depth=%s table=%s keys=%s sql=%s",
            node.relation.source,
            node.key,
            node.depth,
            query.table,
            len(query.keys),
            sql,
        )
        async with limiter:
            try:
                return await self._executor.fetch_all(sql, *params)
            except Exception as exc:
                raise QueryExecutionError(node.relation.source, node.key, node.depth, exc) from exc

    def _primary_key(self, entity: str) -> tuple[str, ...]:
        schema = self._graph.entity(entity)
        return schema.primary_key if schema is not None else ()

    def _columns(self, node: PlanNode, required: Sequence[str]) -> tuple[str, ...] | None:
        """
        Columns to fetch for the target rows of `node`.

        With `select`, the key columns this relation and its nested
        relations stitch on are fetched too; `_project` trims them later.
        """
        if node.options.select is None:
            return None
        columns = [*node.options.select, *required]
        if node.nested is not None:
            for child in node.nested.nodes:
                columns.extend(child.relation.source_key)
        return tuple(dict.fromkeys(columns))

    def _project(self, rows: list[Row], node: PlanNode) -> None:
        select = node.options.select
        exclude = node.options.exclude
        if select is None and not exclude:
            return

        nested_keys = {child.key for child in node.nested.nodes} if node.nested is not None else set()
        allowed = set(select) | nested_keys if select is not None else None
        for row in rows:
            if allowed is not None:
                for column in [c for c in row if c not in allowed]:
                    del row[column]
            for column in exclude or ():
                if column not in nested_keys:
                    row.pop(column, None)

    async def _load_one(self, rows: list[Row], node: PlanNode, limiter: asyncio.Semaphore) -> None:
        rel = node.relation
        keys = _distinct_keys(rows, rel.source_key)
        if not keys:
            for row in rows:
                row[node.key] = None
            return

        query = BatchQuery(
            table=rel.target,
            key_columns=rel.target_key,
            keys=keys,
            columns=self._columns(node, rel.target_key),
        )
        found = await self._fetch(node, query, limiter)

        index: dict[Key, Row] = {}
        for target in found:
            key = _key_of(target, rel.target_key)
            if key is not None:
                index.setdefault(key, target)

        for row in rows:
            key = _key_of(row, rel.source_key)
            row[node.key] = index.get(key) if key is not None else None

    async def _load_many(self, rows: list[Row], node: PlanNode, limiter: asyncio.Semaphore) -> None:
        rel = node.relation
        keys = _distinct_keys(rows, rel.source_key)
        if not keys:
            for row in rows:
                row[node.key] = []
            return

        query = BatchQuery(
            table=rel.target,
            key_columns=rel.target_key,
            keys=keys,
            columns=self._columns(node, rel.target_key),
            ordering=merge_ordering(
                _ascending(rel.target_key),
                node.options.ordering(),
                _ascending(self._primary_key(rel.target)),
            ),
        )
        children = await self._fetch(node, query, limiter)
        groups = _group(children, rel.target_key)

        for row in rows:
            key = _key_of(row, rel.source_key)
            matches = groups.get(key, []) if key is not None else []
            row[node.key] = _window(matches, node.options)

    async def _load_many_via_join(self, rows: list[Row], node: PlanNode, limiter: asyncio.Semaphore) -> None:
        rel = node.relation
        assert rel.join_entity is not None
        keys = _distinct_keys(rows, rel.source_key)
        if not keys:
            for row in rows:
                row[node.key] = []
            return

        # 1) join rows for the parents, projected to the key pairs
        join_query = BatchQuery(
            table=rel.join_entity,
            key_columns=rel.join_source_key,
            keys=keys,
            columns=tuple(dict.fromkeys(rel.join_source_key + rel.join_target_key)),
            ordering=merge_ordering(_ascending(rel.join_source_key), _ascending(rel.join_target_key)),
        )
        join_rows = await self._fetch(node, join_query, limiter)
        target_keys = _distinct_keys(join_rows, rel.join_target_key)
        if not target_keys:
            for row in rows:
                row[node.key] = []
            return

        # 2) targets referenced by those join rows
        target_query = BatchQuery(
            table=rel.target,
            key_columns=rel.target_key,
            keys=target_keys,
            columns=self._columns(node, rel.target_key),
            ordering=merge_ordering(node.options.ordering(), _ascending(self._primary_key(rel.target))),
        )
        targets = await self._fetch(node, target_query, limiter)

        index: dict[Key, Row] = {}
        position: dict[Key, int] = {}
        for pos, target in enumerate(targets):
            key = _key_of(target, rel.target_key)
            if key is not None and key not in index:
                index[key] = target
                position[key] = pos

        links_by_parent = _group(join_rows, rel.join_source_key)
        ordered = bool(node.options.order_by)
        for row in rows:
            key = _key_of(row, rel.source_key)
            links: list[Key] = []
            if key is not None:
                for join_row in links_by_parent.get(key, []):
                    link = _key_of(join_row, rel.join_target_key)
                    if link is not None and link in index:
                        links.append(link)
            if rel.unique:
                links = list(dict.fromkeys(links))
            if ordered:
                links.sort(key=position.__getitem__)
            row[node.key] = _window([index[link] for link in links], node.options)


async def stitch(
    graph: RelationGraph,
    entity: str,
    rows: Sequence[Row],
    plan: Plan,
    executor: QueryExecutor,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    logger: logging.Logger | None = None,
) -> list[Row]:
    loader = BatchLoader(graph, executor, concurrency=concurrency, logger=logger)
    return await loader.stitch(entity, rows, plan)
