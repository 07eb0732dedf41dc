"""Tests for includes.controller — strict vs degrade policy."""

from __future__ import annotations

import logging

import pytest

from core.config import IncludeSettings
from includes.controller import IncludeController, IncludeOutcome
from includes.errors import StitchAbort, UnknownRelationError

SPEC = {"books": {"include": {"tags": True}}}


def _controller(graph, db, **settings):
    return IncludeController(graph, db, settings=IncludeSettings(**settings))


class TestCompile:
    def test_rejects_unknown_relation(self, graph, library_db):
        with pytest.raises(UnknownRelationError):
            _controller(graph, library_db).compile("authors", {"nonExistentRelation": True})

    def test_uses_configured_depth(self, graph, library_db):
        plan = _controller(graph, library_db, max_depth=1).compile("authors", SPEC)
        assert plan.nodes[0].nested is None

    def test_logs_pruned_paths(self, graph, library_db, caplog):
        controller = _controller(graph, library_db, max_depth=1, debug=True)
        with caplog.at_level(logging.DEBUG, logger="includes"):
            controller.compile("authors", SPEC)
        assert "include_pruned" in caplog.text


class TestStitch:
    @pytest.mark.asyncio
    async def test_success_is_bare_array(self, graph, library_db, authors):
        controller = _controller(graph, library_db)
        result = await controller.resolve("authors", authors, SPEC)
        assert result.outcome is IncludeOutcome.STITCHED
        assert result.failure is None
        payload = result.payload()
        assert isinstance(payload, list)
        assert payload[0]["books"][0]["tags"]

    @pytest.mark.asyncio
    async def test_empty_plan_skips_queries(self, graph, library_db, authors):
        result = await _controller(graph, library_db).resolve("authors", authors, None)
        assert result.payload() == authors
        assert library_db.queries == []

    @pytest.mark.asyncio
    async def test_non_strict_degrades(self, graph, library_db, authors):
        library_db.fail("tags")
        result = await _controller(graph, library_db).resolve("authors", authors, SPEC)

        assert result.outcome is IncludeOutcome.PARTIALLY_STITCHED
        payload = result.payload()
        assert payload["data"] == authors
        assert "tags" in payload["includeError"]["message"]
        assert set(payload["includeError"]) == {"message"}

    @pytest.mark.asyncio
    async def test_debug_adds_detail(self, graph, library_db, authors):
        library_db.fail("tags")
        result = await _controller(graph, library_db, debug=True).resolve("authors", authors, SPEC)
        error = result.payload()["includeError"]
        assert error["entity"] == "books"
        assert error["relation"] == "tags"
        assert error["depth"] == 1
        assert error["cause"].startswith("RuntimeError")
        assert "Traceback" in error["stack"]

    @pytest.mark.asyncio
    async def test_strict_aborts(self, graph, library_db, authors):
        library_db.fail("books")
        controller = _controller(graph, library_db, strict=True)
        with pytest.raises(StitchAbort) as info:
            await controller.resolve("authors", authors, SPEC)
        assert info.value.error.relation == "books"
        assert info.value.error.depth == 0

    @pytest.mark.asyncio
    async def test_only_query_failures_degrade(self, graph, library_db):
        controller = _controller(graph, library_db)
        plan = controller.compile("authors", SPEC)
        with pytest.raises(ValueError):
            await controller.stitch(plan, ["not-a-row"])
