"""
Include resolution engine.

graph -> compiler (raw `include` spec to Plan) -> loader (batched stitching)
-> controller (strict / degrade policy).
"""

from .compiler import check_columns, compile_include
from .controller import IncludeController, IncludeFailure, IncludeOutcome, IncludeResult
from .errors import (
    IncludeError,
    InvalidIncludeError,
    QueryExecutionError,
    StitchAbort,
    UnknownEntityError,
    UnknownRelationError,
)
from .graph import (
    EntitySchema,
    ForeignKey,
    RelationDescriptor,
    RelationGraph,
    RelationKind,
    TableSpec,
    build_graph,
)
from .loader import BatchLoader, QueryExecutor, stitch
from .plan import IncludeOptions, Plan, PlanNode

__all__ = [
    "BatchLoader",
    "EntitySchema",
    "ForeignKey",
    "IncludeController",
    "IncludeError",
    "IncludeFailure",
    "IncludeOptions",
    "IncludeOutcome",
    "IncludeResult",
    "InvalidIncludeError",
    "Plan",
    "PlanNode",
    "QueryExecutionError",
    "QueryExecutor",
    "RelationDescriptor",
    "RelationGraph",
    "RelationKind",
    "StitchAbort",
    "TableSpec",
    "UnknownEntityError",
    "UnknownRelationError",
    "build_graph",
    "check_columns",
    "compile_include",
    "stitch",
]
