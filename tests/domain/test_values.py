"""Tests for domain value objects and exceptions."""

from __future__ import annotations

import dataclasses

import pytest

from archdoc_refine.domain.enums import GapCategory, StopReason
from archdoc_refine.domain.exceptions import (
    ArchDocError,
    ConfigurationError,
    StructuredOutputError,
)
from archdoc_refine.domain.values import (
    DependencyGraph,
    Gap,
    ImportEdge,
    ModuleGroup,
    RefinementResult,
    RetrievedFile,
    TaskContext,
    TokenUsage,
)


class TestGap:

    def test_priority_score(self) -> None:
        assert Gap("x", GapCategory.HIGH).priority_score == 3
        assert Gap("x", GapCategory.MEDIUM).priority_score == 2
        assert Gap("x").priority_score == 1

    def test_dict_roundtrip(self) -> None:
        gap = Gap("Database schema", GapCategory.HIGH)
        assert Gap.from_dict(gap.to_dict()) == gap

    def test_frozen(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            Gap("x").text = "y"  # type: ignore[misc]


class TestRetrievedFile:

    def test_from_dict_defaults(self) -> None:
        assert RetrievedFile.from_dict({"path": "a.ts"}) == RetrievedFile("a.ts", "")


class TestTokenUsage:

    def test_addition(self) -> None:
        total = TokenUsage(10, 2) + TokenUsage(5, 3)
        assert total == TokenUsage(15, 5)
        assert total.total_tokens == 20

    def test_to_dict(self) -> None:
        assert TokenUsage(7, 3).to_dict() == {"input": 7, "output": 3, "total": 10}


class TestDependencyGraph:

    GRAPH = DependencyGraph(
        imports=(
            ImportEdge("src/app.ts", "src/users/user.service.ts"),
            ImportEdge("src/users/user.service.ts", "src/db/connection.ts"),
        ),
        modules=(ModuleGroup("users", ("src/users/user.service.ts", "src/users/user.controller.ts")),),
    )

    def test_imports_of(self) -> None:
        assert self.GRAPH.imports_of("src/users/user.service.ts") == ["src/db/connection.ts"]

    def test_importers_of(self) -> None:
        assert self.GRAPH.importers_of("src/users/user.service.ts") == ["src/app.ts"]

    def test_module_peers(self) -> None:
        assert self.GRAPH.module_peers("src/users/user.service.ts") == [
            "src/users/user.controller.ts"
        ]
        assert self.GRAPH.module_peers("src/app.ts") == []


class TestTaskContext:

    def test_execution_ids_are_unique(self) -> None:
        first = TaskContext(project_path="/repo")
        second = TaskContext(project_path="/repo")
        assert first.execution_id != second.execution_id
        assert len(first.execution_id) == 12


class TestRefinementResult:

    def _result(self, clarity: float) -> RefinementResult:
        return RefinementResult(
            agent_name="architecture",
            final_analysis="# Architecture",
            structured_data={},
            iterations=1,
            clarity_score=clarity,
            residual_gaps=(),
            self_questions=(),
            token_usage=TokenUsage(),
            estimated_cost=0.0,
            stop_reason=StopReason.CLARITY_REACHED,
            execution_time=0.1,
        )

    @pytest.mark.parametrize(("clarity", "confidence"), [(82.0, 0.82), (0.0, 0.0), (120.0, 1.0)])
    def test_confidence(self, clarity: float, confidence: float) -> None:
        assert self._result(clarity).confidence == pytest.approx(confidence)

    def test_to_dict_without_stop_reason(self) -> None:
        result = dataclasses.replace(self._result(50.0), stop_reason=None)
        assert result.to_dict()["metadata"]["stop_reason"] is None


class TestExceptions:

    def test_details_in_message(self) -> None:
        error = ArchDocError("call failed", {"trace_name": "RefineAnalysis"})
        assert str(error) == "call failed (trace_name='RefineAnalysis')"

    def test_configuration_error_is_value_error(self) -> None:
        assert issubclass(ConfigurationError, ValueError)

    def test_structured_output_error_preview_truncated(self) -> None:
        error = StructuredOutputError("bad", context_name="x", attempts=3, preview="p" * 500)
        assert len(error.details["preview"]) == 200
        assert error.preview == "p" * 500
