"""
Include controller: compile + stitch with the deployment's failure policy.

Outcomes:
- REJECTED           compile failed (the caller sees the IncludeError)
- STITCHED           every planned relation was attached
- PARTIALLY_STITCHED non-strict mode, stitching failed; root rows are
                     returned together with an `includeError` descriptor
- ABORTED            strict mode, stitching failed; `StitchAbort` is raised
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from core.config import IncludeSettings
from core.log import include_logger

from .compiler import compile_include
from .errors import QueryExecutionError, StitchAbort
from .graph import RelationGraph
from .loader import BatchLoader, QueryExecutor, Row
from .plan import Plan


class IncludeOutcome(str, Enum):
    REJECTED = "rejected"
    STITCHED = "stitched"
    PARTIALLY_STITCHED = "partially_stitched"
    ABORTED = "aborted"


@dataclass(frozen=True)
class IncludeFailure:
    message: str
    # Only filled in debug deployments.
    detail: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, **(self.detail or {})}


@dataclass(frozen=True)
class IncludeResult:
    rows: list[Row]
    outcome: IncludeOutcome
    failure: IncludeFailure | None = None

    def payload(self) -> list[Row] | dict[str, Any]:
        if self.failure is None:
            return self.rows
        return {"data": self.rows, "includeError": self.failure.to_dict()}


class IncludeController:
    def __init__(
        self,
        graph: RelationGraph,
        executor: QueryExecutor,
        *,
        settings: IncludeSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._graph = graph
        self._executor = executor
        self._settings = settings or IncludeSettings()
        self._logger = logger or include_logger(self._settings.debug)

    @property
    def settings(self) -> IncludeSettings:
        return self._settings

    def compile(self, entity: str, raw_spec: Any) -> Plan:
        plan = compile_include(self._graph, entity, raw_spec, self._settings.max_depth)
        if plan.pruned:
            self._logger.debug(
                "include_pruned entity=%s max_depth=%s paths=%s",
                entity,
                self._settings.max_depth,
                list(plan.pruned),
            )
        return plan

    async def stitch(self, plan: Plan, rows: Sequence[Row]) -> IncludeResult:
        if plan.is_empty:
            return IncludeResult(rows=[dict(r) for r in rows], outcome=IncludeOutcome.STITCHED)

        loader = BatchLoader(
            self._graph,
            self._executor,
            concurrency=self._settings.concurrency,
            logger=self._logger,
        )
        try:
            stitched = await loader.stitch(plan.entity, rows, plan)
        except QueryExecutionError as exc:
            if self._settings.strict:
                self._logger.error(
                    "include_stitch_aborted entity=%s relation=%s depth=%s error=%s",
                    exc.entity,
                    exc.relation,
                    exc.depth,
                    exc.cause,
                )
                raise StitchAbort(exc) from exc

            self._logger.exception(
                "include_stitch_degraded entity=%s relation=%s depth=%s",
                exc.entity,
                exc.relation,
                exc.depth,
            )
            return IncludeResult(
                rows=[dict(r) for r in rows],
                outcome=IncludeOutcome.PARTIALLY_STITCHED,
                failure=self._describe(exc),
            )

        return IncludeResult(rows=stitched, outcome=IncludeOutcome.STITCHED)

    async def resolve(self, entity: str, rows: Sequence[Row], raw_spec: Any) -> IncludeResult:
        return await self.stitch(self.compile(entity, raw_spec), rows)

    def _describe(self, exc: QueryExecutionError) -> IncludeFailure:
        if not self._settings.debug:
            return IncludeFailure(message=str(exc))
        return IncludeFailure(
            message=str(exc),
            detail={
                "entity": exc.entity,
                "relation": exc.relation,
                "depth": exc.depth,
                "cause": f"{type(exc.cause).__name__}: {exc.cause}",
                "stack": "".join(traceback.format_exception(exc)),
            },
        )
