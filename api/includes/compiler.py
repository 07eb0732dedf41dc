"""
Include spec compiler.

Turns the raw `include` value of a request into a `Plan`:

- every key is resolved against the relation graph; one unknown key
  rejects the whole spec
- options objects are validated (pydantic) and column names are checked
- nesting stops at `max_depth`; deeper includes are dropped silently and
  only recorded in `Plan.pruned`

Compilation is pure: no I/O, no logging.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from .errors import InvalidIncludeError, UnknownEntityError, UnknownRelationError
from .graph import EntitySchema, RelationGraph
from .plan import IncludeOptions, Plan, PlanNode

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def compile_include(
    graph: RelationGraph,
    root_entity: str,
    raw_spec: Any,
    max_depth: int,
) -> Plan:
    if max_depth < 1:
        raise ValueError("max_depth must be >= 1")
    if graph.entity(root_entity) is None:
        raise UnknownEntityError(root_entity)
    return _compile_level(graph, root_entity, raw_spec, depth=0, max_depth=max_depth, path=())


def check_columns(schema: EntitySchema, columns: Iterable[str], *, key: str | None = None) -> None:
    """
    Reject column names that are not plain identifiers or that the entity
    does not declare.
    """
    for column in columns:
        if not isinstance(column, str) or not _IDENTIFIER.match(column):
            raise InvalidIncludeError(schema.name, key, f"invalid column name {column!r}")
        if not schema.has_column(column):
            raise InvalidIncludeError(schema.name, key, f"unknown column '{column}'")


def _compile_level(
    graph: RelationGraph,
    entity: str,
    spec: Any,
    *,
    depth: int,
    max_depth: int,
    path: tuple[str, ...],
) -> Plan:
    if spec is None:
        return Plan(entity=entity, depth=depth)
    if not isinstance(spec, Mapping):
        raise InvalidIncludeError(entity, None, "include must be an object")

    nodes: list[PlanNode] = []
    pruned: list[str] = []
    for key, value in spec.items():
        relation = graph.lookup(entity, key)
        if relation is None:
            raise UnknownRelationError(entity, key)

        if value is False or value is None:
            continue
        if value is True:
            nodes.append(PlanNode(key=key, relation=relation, depth=depth))
            continue
        if not isinstance(value, Mapping):
            raise InvalidIncludeError(entity, key, "expected true or an options object")

        options = _parse_options(entity, key, value)
        target = graph.entity(relation.target)
        assert target is not None  # guaranteed by RelationGraph
        check_columns(
            target,
            [*(options.select or ()), *(options.exclude or ()), *(options.order_by or ())],
            key=key,
        )

        nested: Plan | None = None
        if options.include:
            if depth + 1 < max_depth:
                nested = _compile_level(
                    graph,
                    relation.target,
                    options.include,
                    depth=depth + 1,
                    max_depth=max_depth,
                    path=path + (key,),
                )
                pruned.extend(nested.pruned)
                if nested.is_empty:
                    nested = None
            else:
                pruned.append(".".join(path + (key,)))

        nodes.append(
            PlanNode(
                key=key,
                relation=relation,
                depth=depth,
                options=options.model_copy(update={"include": None}),
                nested=nested,
            )
        )

    return Plan(entity=entity, depth=depth, nodes=tuple(nodes), pruned=tuple(pruned))


def _parse_options(entity: str, key: str, value: Mapping[str, Any]) -> IncludeOptions:
    try:
        return IncludeOptions.model_validate(dict(value))
    except ValidationError as exc:
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidIncludeError(entity, key, detail) from exc
