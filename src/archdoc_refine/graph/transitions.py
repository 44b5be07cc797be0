"""Pure state transitions of the refinement loop.

Every function takes a :class:`WorkflowState` plus the input produced by a
node (model output, parsed records, retrieved files) and returns a new
state.  The input state is never mutated, so transitions can be unit
tested without a model or a graph runtime.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from archdoc_refine.domain.enums import StopReason
from archdoc_refine.domain.values import Gap, RetrievedFile
from archdoc_refine.graph.edges import decide_termination
from archdoc_refine.graph.state import WorkflowState
from archdoc_refine.infrastructure.config import RefinementPolicy
from archdoc_refine.infrastructure.llm import CompletionResponse
from archdoc_refine.services.gap_tracker import GapTracker
from archdoc_refine.services.llm_evaluation import EvaluationOutput

logger = logging.getLogger(__name__)

INSUFFICIENT_CONTENT_GAP = (
    "Insufficient content: the analysis is too short to evaluate"
)


def _copy(state: WorkflowState, **changes: Any) -> WorkflowState:
    new = copy.copy(state)
    new.missing_information = list(state.missing_information)
    new.all_seen_gaps = set(state.all_seen_gaps)
    new.self_questions = list(state.self_questions)
    new.retrieved_files = list(state.retrieved_files)
    new.structured_data = dict(state.structured_data)
    new.refinement_notes = list(state.refinement_notes)
    for name, value in changes.items():
        setattr(new, name, value)
    return new


def record_usage(state: WorkflowState, responses: Iterable[CompletionResponse]) -> WorkflowState:
    """Add the usage of *responses* to the token totals."""
    input_tokens = state.total_input_tokens
    output_tokens = state.total_output_tokens
    for response in responses:
        usage = response.usage
        input_tokens += usage.input_tokens
        output_tokens += usage.output_tokens
    return _copy(state, total_input_tokens=input_tokens, total_output_tokens=output_tokens)


# -- AnalyzeInitial -----------------------------------------------------------

def apply_initial_analysis(
    state: WorkflowState,
    analysis: str,
    record: Mapping[str, Any],
    force_stop: bool,
) -> WorkflowState:
    return _copy(
        state,
        iteration=max(state.iteration, 1),
        current_analysis=analysis,
        structured_data=dict(record),
        record_is_current=True,
        force_stop=force_stop,
    )


# -- EvaluateClarity ----------------------------------------------------------

def apply_force_stop(state: WorkflowState, policy: RefinementPolicy) -> WorkflowState:
    """Maximal clarity, no gaps, and the iteration budget exhausted."""
    return _copy(
        state,
        clarity_score=100.0,
        missing_information=[],
        iteration=max(state.iteration, policy.max_iterations),
    )


def apply_insufficient_content(state: WorkflowState) -> WorkflowState:
    """Zero clarity and a single synthetic gap."""
    return _copy(
        state,
        clarity_score=0.0,
        missing_information=[Gap(text=INSUFFICIENT_CONTENT_GAP)],
        previous_gap_count=1,
        gap_reduction_rate=0.0,
    )


def gap_reduction_rate(previous_count: int, current_count: int) -> float:
    if previous_count == 0:
        return 0.0
    return (previous_count - current_count) / previous_count * 100.0


def apply_evaluation(
    state: WorkflowState,
    evaluation: EvaluationOutput,
    policy: RefinementPolicy,
) -> WorkflowState:
    """Record scores and the gaps not seen in earlier iterations."""
    tracker = GapTracker(state.all_seen_gaps, max_seen=policy.max_seen_gaps)
    new_gaps = tracker.observe(evaluation.missing_information)
    return _copy(
        state,
        clarity_score=evaluation.overall,
        missing_information=new_gaps,
        all_seen_gaps=set(tracker.seen_keys),
        gap_reduction_rate=gap_reduction_rate(state.previous_gap_count, len(new_gaps)),
        previous_gap_count=len(new_gaps),
    )


def apply_termination_decision(state: WorkflowState, policy: RefinementPolicy) -> WorkflowState:
    reason = decide_termination(state, policy)
    if reason is None:
        return state
    return _copy(state, stop_reason=reason)


# -- GenerateQuestions / RetrieveFiles ----------------------------------------

def clear_gaps(state: WorkflowState, note: str = "") -> WorkflowState:
    notes = list(state.refinement_notes)
    if note:
        notes.append(note)
    return _copy(state, missing_information=[], refinement_notes=notes)


def apply_questions(state: WorkflowState, questions: Sequence[str]) -> WorkflowState:
    return _copy(state, self_questions=list(questions), retrieved_files=[])


def apply_retrieval(state: WorkflowState, files: Sequence[RetrievedFile]) -> WorkflowState:
    """Store files unique by path; an empty result clears the gaps."""
    seen: set[str] = set()
    unique: list[RetrievedFile] = []
    for item in files:
        if item.path not in seen:
            seen.add(item.path)
            unique.append(item)
    new = _copy(state, retrieved_files=unique)
    if not unique:
        return clear_gaps(
            new,
            f"Iteration {state.iteration}: no source files found for the questions",
        )
    return new


def check_refinement_data(state: WorkflowState) -> WorkflowState:
    """Finalize when there is nothing to refine with but gaps remain."""
    if state.self_questions or state.retrieved_files or not state.missing_information:
        return state
    return _copy(
        state,
        stop_reason=StopReason.NO_REFINEMENT_DATA,
        refinement_notes=state.refinement_notes
        + [f"Iteration {state.iteration}: no questions or files to refine with"],
    )


# -- RefineAnalysis -----------------------------------------------------------

def apply_refinement(
    state: WorkflowState,
    refined: str,
    policy: RefinementPolicy,
) -> WorkflowState:
    """Adopt *refined* unless it is degenerate; stalled growth ends the loop."""
    targeted = min(5, len(state.missing_information))
    if len(refined.strip()) < policy.min_analysis_length:
        logger.warning(
            "Refinement at iteration %d returned %d chars; keeping previous analysis",
            state.iteration,
            len(refined.strip()),
        )
        return _copy(
            state,
            missing_information=[],
            retrieved_files=[],
            stop_reason=StopReason.EMPTY_REFINEMENT,
            refinement_notes=state.refinement_notes
            + [f"Iteration {state.iteration}: refinement returned no usable content"],
        )

    notes = state.refinement_notes + [
        f"Iteration {state.iteration}: addressed {len(state.self_questions)} "
        f"question(s) targeting {targeted} gap(s)"
    ]
    iteration = state.iteration + 1
    previous_length = len(state.current_analysis)
    growth = (len(refined) - previous_length) / previous_length if previous_length else 1.0
    if state.iteration > 1 and growth < policy.min_growth_ratio:
        logger.info(
            "Refinement stalled at iteration %d (growth %.2f%%)",
            state.iteration,
            growth * 100,
        )
        iteration = max(iteration, policy.max_iterations)
        notes.append(f"Iteration {state.iteration}: analysis stopped growing")

    return _copy(
        state,
        current_analysis=refined,
        record_is_current=False,
        iteration=iteration,
        retrieved_files=[],
        refinement_notes=notes,
    )


# -- Finalize -----------------------------------------------------------------

def apply_finalize(state: WorkflowState, record: Mapping[str, Any] | None = None) -> WorkflowState:
    changes: dict[str, Any] = {"final_analysis": state.current_analysis}
    if record is not None:
        changes["structured_data"] = dict(record)
        changes["record_is_current"] = True
    return _copy(state, **changes)
