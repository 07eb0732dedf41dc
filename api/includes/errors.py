"""
Include engine errors.

Compile-time errors (unknown entity/relation, invalid options) reject the
whole request. Stitch-time errors wrap a data-store failure with the place
in the plan where it happened.
"""

from __future__ import annotations


class IncludeError(RuntimeError):
    pass


class UnknownEntityError(IncludeError):
    def __init__(self, entity: str) -> None:
        super().__init__(f"Unknown entity '{entity}'")
        self.entity = entity


class UnknownRelationError(IncludeError):
    def __init__(self, entity: str, key: str) -> None:
        super().__init__(f"Unknown include key '{key}' on '{entity}'")
        self.entity = entity
        self.key = key


class InvalidIncludeError(IncludeError):
    def __init__(self, entity: str, key: str | None, detail: str) -> None:
        where = f"'{key}' on '{entity}'" if key else f"'{entity}'"
        super().__init__(f"Invalid include for {where}: {detail}")
        self.entity = entity
        self.key = key
        self.detail = detail


class QueryExecutionError(IncludeError):
    def __init__(self, entity: str, relation: str, depth: int, cause: BaseException) -> None:
        super().__init__(f"Loading '{relation}' on '{entity}' (depth {depth}) failed: {cause}")
        self.entity = entity
        self.relation = relation
        self.depth = depth
        self.cause = cause


class StitchAbort(IncludeError):
    """
    Raised by the controller in strict mode; `error` is the failure that
    aborted stitching.
    """

    def __init__(self, error: QueryExecutionError) -> None:
        super().__init__(str(error))
        self.error = error
