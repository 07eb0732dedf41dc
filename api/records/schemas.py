"""
Pydantic schemas for record endpoints.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ListRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Validated by the include compiler, not here.
    include: dict[str, Any] | None = None
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    order_by: str | None = Field(default=None, alias="orderBy", max_length=63)
    order: Literal["asc", "desc"] = "asc"
