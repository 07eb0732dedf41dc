"""
Record API endpoints.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from core import db
from includes.loader import QueryExecutor

from . import schemas, service

router = APIRouter()


def get_executor() -> QueryExecutor:
    # The db module exposes `fetch_all`, which is all the include engine needs.
    return db


@router.post("/v1/{entity}/list", response_model=None)
async def list_records(
    entity: str,
    request: schemas.ListRequest,
    executor: QueryExecutor = Depends(get_executor),
) -> list[dict[str, Any]] | dict[str, Any]:
    """
    List rows of `entity` with optional nested includes.

    Returns a bare array when every include resolved, or
    `{"data": [...], "includeError": {...}}` when stitching degraded.
    """
    return await service.list_records(executor, entity, request)


@router.get("/v1/{entity}/relations")
async def get_relations(entity: str) -> dict:
    return service.describe_relations(entity)
