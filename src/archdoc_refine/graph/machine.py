"""Explicit finite-state machine driving one refinement run.

States and transitions::

    AnalyzeInitial -> EvaluateClarity
    EvaluateClarity -> GenerateQuestions | Finalize
    GenerateQuestions -> RetrieveFiles
    RetrieveFiles -> RefineAnalysis | Finalize
    RefineAnalysis -> EvaluateClarity | Finalize

Nodes run strictly one after another.  After every node a
:class:`StepRecord` (a deep copy of the state plus the next node) is
appended to the history and handed to the optional checkpoint hook, so a
run can be inspected step by step or resumed from any boundary.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from archdoc_refine.domain.enums import WorkflowNode
from archdoc_refine.graph.edges import (
    route_after_evaluation,
    route_after_refinement,
    route_after_retrieval,
)
from archdoc_refine.graph.nodes import NODE_FUNCTIONS, NodeFunction, RunContext
from archdoc_refine.graph.state import WorkflowState

logger = logging.getLogger(__name__)

_ROUTES: dict[WorkflowNode, Callable[[WorkflowState], WorkflowNode | None]] = {
    WorkflowNode.ANALYZE_INITIAL: lambda _: WorkflowNode.EVALUATE_CLARITY,
    WorkflowNode.EVALUATE_CLARITY: route_after_evaluation,
    WorkflowNode.GENERATE_QUESTIONS: lambda _: WorkflowNode.RETRIEVE_FILES,
    WorkflowNode.RETRIEVE_FILES: route_after_retrieval,
    WorkflowNode.REFINE_ANALYSIS: route_after_refinement,
    WorkflowNode.FINALIZE: lambda _: None,
}


def next_node(node: WorkflowNode, state: WorkflowState) -> WorkflowNode | None:
    """Return the node that follows *node* given *state* (``None`` after Finalize)."""
    return _ROUTES[node](state)


@dataclass(frozen=True)
class StepRecord:
    """State at a step boundary.

    Attributes
    ----------
    index:
        Zero-based position of the step within the run.
    node:
        The node that just ran.
    next_node:
        The node that runs next, ``None`` once finalized.
    state:
        Deep copy of the state produced by ``node``.
    duration:
        Wall-clock seconds spent in ``node``.
    """

    index: int
    node: WorkflowNode
    next_node: WorkflowNode | None
    state: WorkflowState
    duration: float


CheckpointHook = Callable[[StepRecord], None]


class RefinementStateMachine:
    """Runs the refinement loop for one :class:`RunContext`.

    Parameters
    ----------
    context:
        Collaborators and policy for the run.
    checkpoint:
        Optional callable invoked with every :class:`StepRecord`.
    nodes:
        Optional overrides of individual node functions.

    Usage::

        machine = RefinementStateMachine(context)
        final_state = machine.run()
        for record in machine.replay():
            print(record.node, record.state.clarity_score)
    """

    def __init__(
        self,
        context: RunContext,
        checkpoint: CheckpointHook | None = None,
        nodes: dict[WorkflowNode, NodeFunction] | None = None,
    ) -> None:
        self._context = context
        self._checkpoint = checkpoint
        self._nodes = {**NODE_FUNCTIONS, **(nodes or {})}
        self._history: list[StepRecord] = []

    @property
    def context(self) -> RunContext:
        return self._context

    @property
    def history(self) -> tuple[StepRecord, ...]:
        return tuple(self._history)

    def replay(self) -> Iterator[StepRecord]:
        """Iterate over the recorded step boundaries in order."""
        return iter(self._history)

    def run(self, state: WorkflowState | None = None) -> WorkflowState:
        """Run from ``AnalyzeInitial`` to ``Finalize`` and return the final state."""
        self._history = []
        return self._execute(WorkflowNode.ANALYZE_INITIAL, state or WorkflowState())

    def resume(self, record: StepRecord) -> WorkflowState:
        """Continue a run from the boundary captured in *record*.

        The history is truncated to the steps up to and including *record*.
        """
        if record.next_node is None:
            return record.state.snapshot()
        self._history = [r for r in self._history if r.index <= record.index]
        return self._execute(record.next_node, record.state.snapshot())

    def _execute(self, node: WorkflowNode | None, state: WorkflowState) -> WorkflowState:
        while node is not None:
            start = time.monotonic()
            state = self._nodes[node](state, self._context)
            following = next_node(node, state)
            step = StepRecord(
                index=len(self._history),
                node=node,
                next_node=following,
                state=state.snapshot(),
                duration=time.monotonic() - start,
            )
            self._history.append(step)
            logger.debug(
                "[%s] step %d: %s -> %s",
                self._context.agent_name,
                step.index,
                node.value,
                following.value if following else "end",
            )
            if self._checkpoint is not None:
                self._checkpoint(step)
            node = following
        return state
