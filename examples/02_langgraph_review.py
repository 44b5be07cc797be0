#!/usr/bin/env python3
"""Example 02: the refinement loop as a LangGraph with a review pause.

Demonstrates:
- ``build_refinement_graph()`` with a ``MemorySaver`` checkpointer
- Interrupting before ``refine_analysis`` to review the self-questions
- Resuming the paused thread and converting channels back to state

Run:
    PYTHONPATH=src python examples/02_langgraph_review.py
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from langgraph.checkpoint.memory import MemorySaver

from archdoc_refine import TaskContext
from archdoc_refine.graph import (
    RunContext,
    WorkflowState,
    build_refinement_graph,
    recursion_limit,
)
from archdoc_refine.services import DomainPromptBuilder
from archdoc_refine.testing import ScriptedCompletionClient, evaluation_text

ANALYSIS = (
    '{"patterns": ["repository", "strategy"], "summary": "Payment providers are '
    'selected at runtime through a strategy registry; every aggregate has a '
    'repository backed by the ORM."}'
)
REFINED = (
    '{"patterns": ["repository", "strategy", "outbox"], "summary": "Payment providers '
    "are selected at runtime through a strategy registry; every aggregate has a "
    "repository backed by the ORM. Domain events are written to an outbox table "
    'in the same transaction and relayed by a worker."}'
)


class PatternPromptBuilder(DomainPromptBuilder):
    name = "patterns"

    def build_system_prompt(self, context: Any) -> str:
        return "You identify design patterns in source code. Answer in JSON."

    def build_human_prompt(self, context: Any) -> str:
        return 'List the patterns used in this project as {"patterns": [...], "summary": "..."}.'

    def fallback_record(self) -> Mapping[str, Any]:
        return {"patterns": None}


def main() -> None:
    client = ScriptedCompletionClient(
        by_trace={
            "AnalyzeInitial": [(ANALYSIS, 700, 120)],
            "EvaluateClarity": [
                (evaluation_text(64, ["How are domain events delivered to other modules?"]), 400, 40),
                (evaluation_text(83), 450, 20),
            ],
            "GenerateQuestions": [("1. Which worker relays domain events from the outbox?", 250, 20)],
            "RefineAnalysis": [(REFINED, 1500, 200)],
        }
    )
    context = RunContext(
        task=TaskContext(project_path=".", files=()),
        prompt_builder=PatternPromptBuilder(),
        client=client,
    )
    app = build_refinement_graph(
        context, checkpointer=MemorySaver(), interrupt_before=["refine_analysis"]
    )
    config = {"configurable": {"thread_id": "patterns-review"},
              "recursion_limit": recursion_limit(context)}

    print("=== LangGraph Refinement With Review ===")
    app.invoke(WorkflowState().to_channels(), config=config)
    paused = app.get_state(config)
    print(f"Paused before: {paused.next}")
    print(f"Questions to answer: {paused.values['self_questions']}")
    print(f"Notes so far: {paused.values['refinement_notes']}")
    print()

    final = WorkflowState.from_channels(app.invoke(None, config=config))
    print(f"Stop reason: {final.stop_reason.value if final.stop_reason else 'n/a'}")
    print(f"Patterns:    {final.structured_data.get('patterns')}")
    print(f"Tokens:      {final.token_usage.to_dict()}")
    print(f"Checkpoints: {len(list(app.get_state_history(config)))}")


if __name__ == "__main__":
    main()
