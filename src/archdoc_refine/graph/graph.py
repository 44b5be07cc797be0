"""Build the refinement loop as a LangGraph ``StateGraph``.

``build_refinement_graph()`` wires the same node functions and routing
rules as :class:`~archdoc_refine.graph.machine.RefinementStateMachine` into
a compiled LangGraph, so a run can use LangGraph checkpointers
(``MemorySaver``, SQLite, Postgres) for persistence and time travel.
Channels hold JSON-friendly values only; see
:class:`~archdoc_refine.graph.state.RefinementGraphState`.
"""

import uuid
from typing import Any, Callable, Optional

from langgraph.graph import END, START, StateGraph

from archdoc_refine.domain.enums import WorkflowNode
from archdoc_refine.graph.edges import (
    route_after_evaluation,
    route_after_refinement,
    route_after_retrieval,
)
from archdoc_refine.graph.nodes import NODE_FUNCTIONS, NodeFunction, RunContext
from archdoc_refine.graph.state import RefinementGraphState, WorkflowState

# Each refine cycle visits four nodes; the slack covers analyze and finalize.
_STEPS_PER_ITERATION = 4
_RECURSION_SLACK = 10


def _as_graph_node(
    node_fn: NodeFunction, context: RunContext
) -> Callable[[dict[str, Any]], dict[str, Any]]:
    def run(channels: dict[str, Any]) -> dict[str, Any]:
        state = WorkflowState.from_channels(channels)
        return node_fn(state, context).to_channels()

    return run


def _as_graph_route(
    route: Callable[[WorkflowState], WorkflowNode],
) -> Callable[[dict[str, Any]], str]:
    def decide(channels: dict[str, Any]) -> str:
        return route(WorkflowState.from_channels(channels)).value

    return decide


def build_refinement_graph(
    context: RunContext,
    checkpointer: Optional[Any] = None,
    interrupt_before: Optional[list[str]] = None,
    interrupt_after: Optional[list[str]] = None,
) -> Any:
    """Build and compile the refinement StateGraph.

    Parameters
    ----------
    context:
        Collaborators and policy for the run; captured by the node closures.
    checkpointer:
        Optional LangGraph checkpointer for persistence.
    interrupt_before:
        Node names to interrupt before (human-in-the-loop).
    interrupt_after:
        Node names to interrupt after (human-in-the-loop).

    Returns
    -------
    CompiledStateGraph
        A compiled graph ready for ``.invoke()`` or ``.stream()``.
    """
    graph = StateGraph(RefinementGraphState)

    for node, node_fn in NODE_FUNCTIONS.items():
        graph.add_node(node.value, _as_graph_node(node_fn, context))

    analyze = WorkflowNode.ANALYZE_INITIAL.value
    evaluate = WorkflowNode.EVALUATE_CLARITY.value
    questions = WorkflowNode.GENERATE_QUESTIONS.value
    retrieve = WorkflowNode.RETRIEVE_FILES.value
    refine = WorkflowNode.REFINE_ANALYSIS.value
    finalize = WorkflowNode.FINALIZE.value

    graph.add_edge(START, analyze)
    graph.add_edge(analyze, evaluate)
    graph.add_conditional_edges(
        evaluate,
        _as_graph_route(route_after_evaluation),
        {questions: questions, finalize: finalize},
    )
    graph.add_edge(questions, retrieve)
    graph.add_conditional_edges(
        retrieve,
        _as_graph_route(route_after_retrieval),
        {refine: refine, finalize: finalize},
    )
    graph.add_conditional_edges(
        refine,
        _as_graph_route(route_after_refinement),
        {evaluate: evaluate, finalize: finalize},
    )
    graph.add_edge(finalize, END)

    compile_kwargs: dict[str, Any] = {}
    if checkpointer is not None:
        compile_kwargs["checkpointer"] = checkpointer
    if interrupt_before:
        compile_kwargs["interrupt_before"] = interrupt_before
    if interrupt_after:
        compile_kwargs["interrupt_after"] = interrupt_after

    return graph.compile(**compile_kwargs)


def recursion_limit(context: RunContext) -> int:
    """Upper bound on graph steps for one run under ``context.policy``."""
    iterations = max(context.policy.max_iterations, 1)
    return _STEPS_PER_ITERATION * iterations + _RECURSION_SLACK


def run_refinement_graph(
    context: RunContext,
    checkpointer: Optional[Any] = None,
    thread_id: Optional[str] = None,
) -> WorkflowState:
    """Build the graph, run it to completion and return the final state."""
    app = build_refinement_graph(context, checkpointer=checkpointer)
    config: dict[str, Any] = {"recursion_limit": recursion_limit(context)}
    if checkpointer is not None:
        config["configurable"] = {"thread_id": thread_id or uuid.uuid4().hex}
    result = app.invoke(WorkflowState().to_channels(), config=config)
    return WorkflowState.from_channels(result)
