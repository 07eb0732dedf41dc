"""
Record listing with include resolution.

Flow for one request:
- compile the `include` spec (reject before touching the DB)
- fetch the page of root rows
- stitch includes; strict/non-strict policy comes from the environment
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status

from core import config
from core.log import include_logger
from includes import (
    EntitySchema,
    IncludeController,
    InvalidIncludeError,
    StitchAbort,
    UnknownRelationError,
    check_columns,
)
from includes.loader import QueryExecutor

from . import catalog, repository
from .schemas import ListRequest


def include_controller(executor: QueryExecutor) -> IncludeController:
    settings = config.include_settings()
    return IncludeController(
        catalog.relation_graph(),
        executor,
        settings=settings,
        logger=include_logger(settings.debug),
    )


def _entity_or_404(entity: str) -> EntitySchema:
    schema = catalog.relation_graph().entity(entity)
    if schema is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown entity '{entity}'.")
    return schema


def describe_relations(entity: str) -> dict[str, Any]:
    schema = _entity_or_404(entity)
    relations = catalog.relation_graph().relations(entity)
    return {
        "entity": entity,
        "primaryKey": list(schema.primary_key),
        "relations": [rel.to_dict() for rel in relations.values()],
    }


async def list_records(
    executor: QueryExecutor,
    entity: str,
    request: ListRequest,
) -> list[dict[str, Any]] | dict[str, Any]:
    schema = _entity_or_404(entity)
    controller = include_controller(executor)

    try:
        plan = controller.compile(entity, request.include)
        ordering: list[tuple[str, str]] = []
        if request.order_by:
            check_columns(schema, [request.order_by])
            ordering.append((request.order_by, request.order))
    except UnknownRelationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "unknown-relation",
                "message": str(exc),
                "entity": exc.entity,
                "key": exc.key,
            },
        ) from exc
    except InvalidIncludeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid-include", "message": str(exc), "entity": exc.entity, "key": exc.key},
        ) from exc

    rows = await repository.list_rows(
        executor,
        entity,
        primary_key=schema.primary_key,
        ordering=ordering,
        limit=request.limit,
        offset=request.offset,
    )
    if plan.is_empty:
        return rows

    try:
        result = await controller.stitch(plan, rows)
    except StitchAbort as exc:
        detail: dict[str, Any] = {"error": "include-stitch-failed", "message": str(exc)}
        if controller.settings.debug:
            detail.update(entity=exc.error.entity, relation=exc.error.relation, depth=exc.error.depth)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail) from exc

    return result.payload()
