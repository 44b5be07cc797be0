"""End-to-end runs of the explicit refinement state machine."""

from __future__ import annotations

import pytest

from archdoc_refine.domain.enums import StopReason, WorkflowNode
from archdoc_refine.domain.values import TaskContext
from archdoc_refine.graph.machine import RefinementStateMachine, StepRecord, next_node
from archdoc_refine.graph.nodes import RunContext
from archdoc_refine.graph.state import WorkflowState
from archdoc_refine.graph.transitions import INSUFFICIENT_CONTENT_GAP
from archdoc_refine.infrastructure.config import RefinementPolicy
from archdoc_refine.infrastructure.file_reader import LocalFileReader
from archdoc_refine.services.domain_prompts import DomainPromptBuilder
from archdoc_refine.services.retrieval import FileRelevanceRetriever
from archdoc_refine.testing import ScriptedCompletionClient, evaluation_text

DRAFT = (
    "# Architecture\n\n"
    + "The HTTP layer routes requests to services that persist through repositories. " * 5
)
REFINED = (
    DRAFT
    + "\n## Error handling\n\n"
    + "Service errors are mapped to HTTP responses by a global exception filter. " * 3
)
QUESTIONS = (
    "1. How is error handling done in the auth service?\n"
    "2. Which controller serves users?"
)

GAPS_FIRST = [
    "Error handling strategy for the payment service",
    "Database schema migrations are not described",
]
GAPS_SECOND = [
    "Caching layer invalidation rules",
    "Logging format and correlation identifiers",
]

TOPICS = [
    "payment reconciliation",
    "session storage",
    "queue retries",
    "email templates",
    "metrics export",
    "tenant isolation",
    "search indexing",
    "file uploads",
    "rate limiting",
    "feature flags",
]


def _context(
    task: TaskContext,
    builder: DomainPromptBuilder,
    client: ScriptedCompletionClient,
    policy: RefinementPolicy | None = None,
) -> RunContext:
    return RunContext(
        task=task,
        prompt_builder=builder,
        client=client,
        policy=policy or RefinementPolicy(),
        retriever=FileRelevanceRetriever(LocalFileReader(task.project_path)),
    )


def _low_progress_client() -> ScriptedCompletionClient:
    return ScriptedCompletionClient(
        by_trace={
            "AnalyzeInitial": [(DRAFT, 1000, 400)],
            "EvaluateClarity": [
                (evaluation_text(60, GAPS_FIRST), 300, 50),
                (evaluation_text(82, GAPS_SECOND), 350, 60),
            ],
            "GenerateQuestions": [(QUESTIONS, 200, 40)],
            "RefineAnalysis": [(REFINED, 2500, 900)],
        }
    )


class TestNextNode:

    def test_fixed_transitions(self) -> None:
        state = WorkflowState()
        assert next_node(WorkflowNode.ANALYZE_INITIAL, state) is WorkflowNode.EVALUATE_CLARITY
        assert next_node(WorkflowNode.GENERATE_QUESTIONS, state) is WorkflowNode.RETRIEVE_FILES
        assert next_node(WorkflowNode.FINALIZE, state) is None


class TestLowProgressRun:

    def test_stops_after_second_evaluation(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        client = _low_progress_client()
        machine = RefinementStateMachine(_context(task, markdown_builder, client))
        final = machine.run()

        assert final.stop_reason is StopReason.LOW_PROGRESS
        assert final.iteration == 2
        assert final.clarity_score == pytest.approx(82)
        assert [g.text for g in final.missing_information] == GAPS_SECOND
        assert final.final_analysis == REFINED
        assert final.structured_data["headings"] == ["# Architecture", "## Error handling"]
        assert client.trace_names == [
            "AnalyzeInitial",
            "EvaluateClarity",
            "GenerateQuestions",
            "RefineAnalysis",
            "EvaluateClarity",
        ]

    def test_token_totals_cover_every_call(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        ctx = _context(task, markdown_builder, _low_progress_client())
        final = RefinementStateMachine(ctx).run()

        assert final.total_input_tokens == 1000 + 300 + 200 + 2500 + 350
        assert final.total_output_tokens == 400 + 50 + 40 + 900 + 60
        assert ctx.accountant is not None
        assert ctx.accountant.total_tokens == final.token_usage.total_tokens
        assert ctx.accountant.call_count == 5

    def test_history_and_checkpoints(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        seen: list[StepRecord] = []
        machine = RefinementStateMachine(
            _context(task, markdown_builder, _low_progress_client()), checkpoint=seen.append
        )
        machine.run()

        assert [r.node for r in machine.history] == [
            WorkflowNode.ANALYZE_INITIAL,
            WorkflowNode.EVALUATE_CLARITY,
            WorkflowNode.GENERATE_QUESTIONS,
            WorkflowNode.RETRIEVE_FILES,
            WorkflowNode.REFINE_ANALYSIS,
            WorkflowNode.EVALUATE_CLARITY,
            WorkflowNode.FINALIZE,
        ]
        assert list(machine.replay()) == seen
        assert seen[-1].next_node is None
        assert [r.index for r in seen] == list(range(7))
        # Snapshots are frozen at their step.
        assert seen[1].state.iteration == 1
        assert seen[1].state.retrieved_files == []
        assert seen[3].state.retrieved_files

    def test_resume_from_checkpoint_matches_full_run(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        machine = RefinementStateMachine(_context(task, markdown_builder, _low_progress_client()))
        full = machine.run()
        after_evaluation = machine.history[1]

        client = ScriptedCompletionClient(
            by_trace={
                "EvaluateClarity": [(evaluation_text(82, GAPS_SECOND), 350, 60)],
                "GenerateQuestions": [(QUESTIONS, 200, 40)],
                "RefineAnalysis": [(REFINED, 2500, 900)],
            }
        )
        resumed = RefinementStateMachine(_context(task, markdown_builder, client))
        assert resumed.resume(after_evaluation) == full
        assert client.trace_names[0] == "GenerateQuestions"

    def test_resume_truncates_history(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        machine = RefinementStateMachine(_context(task, markdown_builder, _low_progress_client()))
        machine.run()
        record = machine.history[4]
        machine.resume(record)
        assert [r.index for r in machine.history] == list(range(7))

    def test_resume_after_finalize_returns_state(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        machine = RefinementStateMachine(_context(task, markdown_builder, _low_progress_client()))
        final = machine.run()
        assert machine.resume(machine.history[-1]) == final


class TestGuards:

    def test_force_stop_single_call(
        self, task: TaskContext, json_builder: DomainPromptBuilder
    ) -> None:
        client = ScriptedCompletionClient(by_trace={"AnalyzeInitial": ['{"patterns": []}']})
        policy = RefinementPolicy(max_iterations=4)
        machine = RefinementStateMachine(_context(task, json_builder, client, policy))
        final = machine.run()

        assert final.stop_reason is StopReason.FORCE_STOP
        assert final.clarity_score == 100.0
        assert final.missing_information == []
        assert final.iteration == 4
        assert final.structured_data == {"patterns": []}
        assert len(client.calls) == 1
        assert [r.node for r in machine.history] == [
            WorkflowNode.ANALYZE_INITIAL,
            WorkflowNode.EVALUATE_CLARITY,
            WorkflowNode.FINALIZE,
        ]

    def test_short_analysis(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        client = ScriptedCompletionClient(by_trace={"AnalyzeInitial": ["# Too short"]})
        final = RefinementStateMachine(_context(task, markdown_builder, client)).run()

        assert final.stop_reason is StopReason.INSUFFICIENT_CONTENT
        assert final.clarity_score == 0.0
        assert [g.text for g in final.missing_information] == [INSUFFICIENT_CONTENT_GAP]
        assert len(client.calls) == 1

    def test_clarity_reached_immediately(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        client = ScriptedCompletionClient(
            by_trace={"AnalyzeInitial": [DRAFT], "EvaluateClarity": [evaluation_text(88)]}
        )
        final = RefinementStateMachine(_context(task, markdown_builder, client)).run()

        assert final.stop_reason is StopReason.CLARITY_REACHED
        assert final.iteration == 1
        assert final.final_analysis == DRAFT
        assert len(client.calls) == 2

    def test_empty_refinement_keeps_draft(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        client = ScriptedCompletionClient(
            by_trace={
                "AnalyzeInitial": [DRAFT],
                "EvaluateClarity": [evaluation_text(50, GAPS_FIRST)],
                "GenerateQuestions": [QUESTIONS],
                "RefineAnalysis": [""],
            }
        )
        final = RefinementStateMachine(_context(task, markdown_builder, client)).run()

        assert final.stop_reason is StopReason.EMPTY_REFINEMENT
        assert final.final_analysis == DRAFT
        assert final.iteration == 1
        assert final.missing_information == []
        assert client.trace_names.count("EvaluateClarity") == 1

    def test_stalled_growth_ends_loop(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        client = ScriptedCompletionClient(
            by_trace={
                "AnalyzeInitial": [DRAFT],
                "EvaluateClarity": [
                    evaluation_text(50, GAPS_FIRST),
                    evaluation_text(55, GAPS_SECOND[:1]),
                ],
                "GenerateQuestions": [QUESTIONS],
                "RefineAnalysis": [REFINED, REFINED],
            }
        )
        final = RefinementStateMachine(_context(task, markdown_builder, client)).run()

        assert final.stop_reason is StopReason.MAX_ITERATIONS
        assert final.iteration == RefinementPolicy().max_iterations
        assert "Iteration 2: analysis stopped growing" in final.refinement_notes
        assert client.trace_names.count("RefineAnalysis") == 2
        assert client.trace_names.count("EvaluateClarity") == 3

    def test_no_questions_and_no_files_finalizes(
        self, task: TaskContext, markdown_builder: DomainPromptBuilder
    ) -> None:
        client = ScriptedCompletionClient(
            by_trace={
                "AnalyzeInitial": [DRAFT],
                "EvaluateClarity": [evaluation_text(50, GAPS_FIRST)],
                "GenerateQuestions": ["I cannot think of any questions."],
            }
        )
        final = RefinementStateMachine(_context(task, markdown_builder, client)).run()

        assert final.stop_reason is StopReason.NO_REFINEMENT_DATA
        assert "RefineAnalysis" not in client.trace_names


class TestIterationBudget:

    @pytest.mark.parametrize("max_iterations", [1, 2, 3, 4, 5])
    def test_runs_exactly_to_max_iterations(
        self,
        max_iterations: int,
        task: TaskContext,
        markdown_builder: DomainPromptBuilder,
    ) -> None:
        evaluations = [
            evaluation_text(50, TOPICS[0:4]),
            evaluation_text(50, TOPICS[4:7]),
            evaluation_text(50, TOPICS[7:9]),
            evaluation_text(50, TOPICS[9:10]),
        ]
        drafts = [DRAFT + f"\n## Section {i}\n" + "More detail. " * (10 * i) for i in range(1, 5)]
        client = ScriptedCompletionClient(
            by_trace={
                "AnalyzeInitial": [DRAFT],
                "EvaluateClarity": evaluations,
                "GenerateQuestions": [QUESTIONS],
                "RefineAnalysis": drafts,
            }
        )
        policy = RefinementPolicy(max_iterations=max_iterations)
        final = RefinementStateMachine(_context(task, markdown_builder, client, policy)).run()

        assert final.stop_reason is StopReason.MAX_ITERATIONS
        assert final.iteration == max_iterations
        assert client.trace_names.count("RefineAnalysis") == max_iterations - 1
        assert client.trace_names.count("EvaluateClarity") == max_iterations
