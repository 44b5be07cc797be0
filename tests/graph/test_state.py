"""Tests for the workflow state record and its channel conversion."""

from __future__ import annotations

from archdoc_refine.domain.enums import GapCategory, StopReason
from archdoc_refine.domain.values import Gap, RetrievedFile, TokenUsage
from archdoc_refine.graph.state import WorkflowState


def _populated() -> WorkflowState:
    return WorkflowState(
        iteration=2,
        current_analysis="# Draft",
        missing_information=[Gap("Database schema", GapCategory.HIGH)],
        all_seen_gaps={"database schema", "email templates"},
        clarity_score=64.5,
        previous_gap_count=1,
        gap_reduction_rate=50.0,
        self_questions=["Where is the schema defined?"],
        retrieved_files=[RetrievedFile("src/schema.ts", "export {}", truncated=True)],
        total_input_tokens=1200,
        total_output_tokens=300,
        structured_data={"layers": ["api", "domain"]},
        record_is_current=True,
        refinement_notes=["Iteration 1: addressed 1 question(s) targeting 1 gap(s)"],
        stop_reason=StopReason.LOW_PROGRESS,
    )


class TestWorkflowState:

    def test_defaults(self) -> None:
        state = WorkflowState()
        assert state.iteration == 0
        assert state.stop_reason is None
        assert state.token_usage == TokenUsage()

    def test_token_usage(self) -> None:
        assert _populated().token_usage == TokenUsage(1200, 300)

    def test_channels_roundtrip(self) -> None:
        state = _populated()
        assert WorkflowState.from_channels(state.to_channels()) == state

    def test_channels_are_json_friendly(self) -> None:
        channels = _populated().to_channels()
        assert channels["stop_reason"] == "low_progress"
        assert channels["all_seen_gaps"] == ["database schema", "email templates"]
        assert channels["missing_information"] == [{"text": "Database schema", "category": "high"}]
        assert channels["retrieved_files"][0]["truncated"] is True

    def test_from_empty_channels(self) -> None:
        assert WorkflowState.from_channels({}) == WorkflowState()

    def test_snapshot_is_independent(self) -> None:
        state = _populated()
        snapshot = state.snapshot()
        state.self_questions.append("another?")
        state.structured_data["layers"].append("infra")
        assert snapshot.self_questions == ["Where is the schema defined?"]
        assert snapshot.structured_data == {"layers": ["api", "domain"]}
