"""Termination rules and routing for the refinement loop.

:func:`decide_termination` encodes the stopping heuristics applied after
every clarity evaluation.  The ``route_*`` functions only read the
``stop_reason`` the nodes recorded, so the explicit state machine and the
LangGraph adapter route identically.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from archdoc_refine.domain.enums import StopReason, WorkflowNode

if TYPE_CHECKING:
    from archdoc_refine.graph.state import WorkflowState
    from archdoc_refine.infrastructure.config import RefinementPolicy

LOW_PROGRESS_RATE = 15.0
HIGH_CLARITY_SCORE = 75.0
HIGH_CLARITY_PROGRESS_RATE = 20.0


def decide_termination(state: WorkflowState, policy: RefinementPolicy) -> StopReason | None:
    """Return why the loop should finalize now, or ``None`` to keep refining.

    Rules, first match wins:

    1. analysis shorter than ``min_analysis_length`` (or a forced stop);
    2. ``iteration >= max_iterations``;
    3. gaps remain and progress is low: iteration >= 2 with a gap
       reduction in [0, 15%), or clarity above 75 with a reduction in
       [0, 20%);
    4. clarity at or above the threshold with no gaps left.

    Clarity above the threshold with gaps remaining keeps refining.
    """
    if state.force_stop:
        return StopReason.FORCE_STOP
    if len(state.current_analysis.strip()) < policy.min_analysis_length:
        return StopReason.INSUFFICIENT_CONTENT
    if state.iteration >= policy.max_iterations:
        return StopReason.MAX_ITERATIONS

    has_gaps = bool(state.missing_information)
    rate = state.gap_reduction_rate
    # A negative rate means new gaps surfaced; that is not low progress.
    low_progress = rate >= 0 and (
        (state.iteration >= 2 and rate < LOW_PROGRESS_RATE)
        or (state.clarity_score > HIGH_CLARITY_SCORE and rate < HIGH_CLARITY_PROGRESS_RATE)
    )
    if has_gaps and low_progress:
        return StopReason.LOW_PROGRESS
    if state.clarity_score >= policy.clarity_threshold and not has_gaps:
        return StopReason.CLARITY_REACHED
    return None


def route_after_evaluation(state: WorkflowState) -> WorkflowNode:
    if state.stop_reason is not None:
        return WorkflowNode.FINALIZE
    return WorkflowNode.GENERATE_QUESTIONS


def route_after_retrieval(state: WorkflowState) -> WorkflowNode:
    """Refining without questions or files is only allowed once no gaps remain."""
    if state.stop_reason is not None:
        return WorkflowNode.FINALIZE
    return WorkflowNode.REFINE_ANALYSIS


def route_after_refinement(state: WorkflowState) -> WorkflowNode:
    if state.stop_reason is not None:
        return WorkflowNode.FINALIZE
    return WorkflowNode.EVALUATE_CLARITY
