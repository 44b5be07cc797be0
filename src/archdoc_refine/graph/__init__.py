"""The refinement loop.

Public API
----------
RefinementStateMachine
    Explicit state machine running one refinement to completion, with
    step records for checkpointing and replay.
build_refinement_graph
    The same loop compiled as a LangGraph ``StateGraph``.
WorkflowState
    State of one run.
RunContext
    Collaborators shared by the nodes of one run.

Node functions (for advanced customisation):
    analyze_initial_node, evaluate_clarity_node, generate_questions_node,
    retrieve_files_node, refine_analysis_node, finalize_node

Edge functions:
    decide_termination, route_after_evaluation, route_after_retrieval,
    route_after_refinement
"""

from archdoc_refine.graph.edges import (
    decide_termination,
    route_after_evaluation,
    route_after_refinement,
    route_after_retrieval,
)
from archdoc_refine.graph.graph import (
    build_refinement_graph,
    recursion_limit,
    run_refinement_graph,
)
from archdoc_refine.graph.machine import RefinementStateMachine, StepRecord, next_node
from archdoc_refine.graph.nodes import (
    RunContext,
    analyze_initial_node,
    evaluate_clarity_node,
    finalize_node,
    generate_questions_node,
    refine_analysis_node,
    retrieve_files_node,
)
from archdoc_refine.graph.state import RefinementGraphState, WorkflowState

__all__ = [
    "RefinementGraphState",
    "RefinementStateMachine",
    "RunContext",
    "StepRecord",
    "WorkflowState",
    "analyze_initial_node",
    "build_refinement_graph",
    "decide_termination",
    "evaluate_clarity_node",
    "finalize_node",
    "generate_questions_node",
    "next_node",
    "recursion_limit",
    "refine_analysis_node",
    "retrieve_files_node",
    "route_after_evaluation",
    "route_after_refinement",
    "route_after_retrieval",
    "run_refinement_graph",
]
