"""
Compiled include plans.

`IncludeOptions` is the wire shape of one include entry's options object;
`Plan`/`PlanNode` are what the compiler produces and the loader executes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .graph import RelationDescriptor

SortOrder = Literal["asc", "desc"]


class IncludeOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    include: dict[str, Any] | None = None
    limit: Annotated[int, Field(strict=True, gt=0)] | None = None
    offset: Annotated[int, Field(strict=True, ge=0)] = 0
    order_by: tuple[str, ...] | None = Field(default=None, alias="orderBy")
    order: tuple[SortOrder, ...] | None = None
    select: tuple[str, ...] | None = None
    exclude: tuple[str, ...] | None = None

    @field_validator("order_by", "order", mode="before")
    @classmethod
    def _one_or_many(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "IncludeOptions":
        if self.order is None or len(self.order) == 1:
            return self
        if self.order_by is None or len(self.order) != len(self.order_by):
            raise ValueError("order must be a single direction or match orderBy one-to-one")
        return self

    def ordering(self) -> list[tuple[str, SortOrder]]:
        if not self.order_by:
            return []
        directions = self.order or ("asc",)
        if len(directions) == 1:
            directions = directions * len(self.order_by)
        return list(zip(self.order_by, directions))


DEFAULT_OPTIONS = IncludeOptions()


@dataclass(frozen=True)
class PlanNode:
    key: str
    relation: RelationDescriptor
    depth: int
    options: IncludeOptions = DEFAULT_OPTIONS
    nested: "Plan | None" = None

    @property
    def is_leaf(self) -> bool:
        return self.nested is None

    def describe(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.relation.kind.value, "target": self.relation.target}
        opts = self.options.model_dump(by_alias=True, exclude={"include"}, exclude_defaults=True)
        if opts:
            out["options"] = opts
        if self.nested is not None:
            out["include"] = self.nested.describe()
        return out


@dataclass(frozen=True)
class Plan:
    entity: str
    depth: int
    nodes: tuple[PlanNode, ...] = ()
    # Dotted include paths dropped by the depth bound.
    pruned: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def describe(self) -> dict[str, Any]:
        return {node.key: node.describe() for node in self.nodes}
