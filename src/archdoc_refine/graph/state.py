"""Workflow state for the refinement loop.

``WorkflowState`` is the single state record owned by one agent run.
Transitions never mutate it in place; they return a modified copy
(see :mod:`archdoc_refine.graph.transitions`).

``RefinementGraphState`` is the ``TypedDict`` flowing through the LangGraph
adapter.  It holds only JSON-friendly values so that checkpointers can
serialize it; :meth:`WorkflowState.to_channels` and
:meth:`WorkflowState.from_channels` convert between the two.

Note: We intentionally do NOT use ``from __future__ import annotations`` because
LangGraph needs to resolve type hints at runtime via ``get_type_hints()``.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Optional, TypedDict

from archdoc_refine.domain.enums import StopReason
from archdoc_refine.domain.values import Gap, RetrievedFile, TokenUsage


@dataclass
class WorkflowState:
    """State of one refinement run.

    Attributes
    ----------
    iteration:
        Refinement iteration; ``1`` after the initial analysis, only grows.
    current_analysis:
        Latest analysis text.
    missing_information:
        New gaps from the most recent evaluation, free of mutual duplicates.
    all_seen_gaps:
        Normalized keys of every gap reported during the run; only grows.
    clarity_score:
        Mean of the four sub-scores of the most recent evaluation.
    previous_gap_count:
        Gap count of the most recent evaluation.
    gap_reduction_rate:
        Percentage change in gap count between the last two evaluations.
    self_questions:
        Questions generated in the current cycle.
    retrieved_files:
        Files read for the current cycle, unique by path.
    force_stop:
        Set when the domain record says there is nothing to refine.
    total_input_tokens, total_output_tokens:
        Sums of the usage reported by every completion call.
    structured_data:
        Record parsed from the analysis by the domain prompt builder.
    record_is_current:
        Whether ``structured_data`` was parsed from ``current_analysis``.
    refinement_notes:
        Human-readable notes on guards that fired during the run.
    final_analysis:
        Text published by ``Finalize``.
    stop_reason:
        Why the loop is heading to (or reached) ``Finalize``.
    """

    iteration: int = 0
    current_analysis: str = ""
    missing_information: list[Gap] = field(default_factory=list)
    all_seen_gaps: set[str] = field(default_factory=set)
    clarity_score: float = 0.0
    previous_gap_count: int = 0
    gap_reduction_rate: float = 0.0
    self_questions: list[str] = field(default_factory=list)
    retrieved_files: list[RetrievedFile] = field(default_factory=list)
    force_stop: bool = False
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    structured_data: dict[str, Any] = field(default_factory=dict)
    record_is_current: bool = False
    refinement_notes: list[str] = field(default_factory=list)
    final_analysis: str = ""
    stop_reason: Optional[StopReason] = None

    @property
    def token_usage(self) -> TokenUsage:
        return TokenUsage(self.total_input_tokens, self.total_output_tokens)

    def snapshot(self) -> "WorkflowState":
        """Deep copy suitable for checkpoint records."""
        return copy.deepcopy(self)

    # -- LangGraph channel conversion -----------------------------------------

    def to_channels(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "current_analysis": self.current_analysis,
            "missing_information": [g.to_dict() for g in self.missing_information],
            "all_seen_gaps": sorted(self.all_seen_gaps),
            "clarity_score": self.clarity_score,
            "previous_gap_count": self.previous_gap_count,
            "gap_reduction_rate": self.gap_reduction_rate,
            "self_questions": list(self.self_questions),
            "retrieved_files": [f.to_dict() for f in self.retrieved_files],
            "force_stop": self.force_stop,
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
            "structured_data": copy.deepcopy(self.structured_data),
            "record_is_current": self.record_is_current,
            "refinement_notes": list(self.refinement_notes),
            "final_analysis": self.final_analysis,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
        }

    @classmethod
    def from_channels(cls, channels: dict[str, Any]) -> "WorkflowState":
        stop_reason = channels.get("stop_reason")
        return cls(
            iteration=channels.get("iteration", 0),
            current_analysis=channels.get("current_analysis", ""),
            missing_information=[
                Gap.from_dict(g) for g in channels.get("missing_information", [])
            ],
            all_seen_gaps=set(channels.get("all_seen_gaps", [])),
            clarity_score=channels.get("clarity_score", 0.0),
            previous_gap_count=channels.get("previous_gap_count", 0),
            gap_reduction_rate=channels.get("gap_reduction_rate", 0.0),
            self_questions=list(channels.get("self_questions", [])),
            retrieved_files=[
                RetrievedFile.from_dict(f) for f in channels.get("retrieved_files", [])
            ],
            force_stop=channels.get("force_stop", False),
            total_input_tokens=channels.get("total_input_tokens", 0),
            total_output_tokens=channels.get("total_output_tokens", 0),
            structured_data=dict(channels.get("structured_data") or {}),
            record_is_current=channels.get("record_is_current", False),
            refinement_notes=list(channels.get("refinement_notes", [])),
            final_analysis=channels.get("final_analysis", ""),
            stop_reason=StopReason(stop_reason) if stop_reason else None,
        )


class RefinementGraphState(TypedDict, total=False):
    """Channels of the LangGraph refinement graph (JSON-friendly values only)."""

    iteration: int
    current_analysis: str
    missing_information: list[dict[str, Any]]
    all_seen_gaps: list[str]
    clarity_score: float
    previous_gap_count: int
    gap_reduction_rate: float
    self_questions: list[str]
    retrieved_files: list[dict[str, Any]]
    force_stop: bool
    total_input_tokens: int
    total_output_tokens: int
    structured_data: dict[str, Any]
    record_is_current: bool
    refinement_notes: list[str]
    final_analysis: str
    stop_reason: Optional[str]
