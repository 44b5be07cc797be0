"""Node functions of the refinement loop.

Each node takes a :class:`WorkflowState` and the run's :class:`RunContext`,
performs its I/O (model calls, file reads) through the context's services
and returns the next state via the pure functions in
:mod:`archdoc_refine.graph.transitions`.  Every completion response,
retries included, is recorded with the run's accountant and added to the
state's token totals.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from archdoc_refine.domain.enums import WorkflowNode
from archdoc_refine.domain.values import TaskContext
from archdoc_refine.graph.state import WorkflowState
from archdoc_refine.graph.transitions import (
    apply_evaluation,
    apply_finalize,
    apply_force_stop,
    apply_initial_analysis,
    apply_insufficient_content,
    apply_questions,
    apply_refinement,
    apply_retrieval,
    apply_termination_decision,
    check_refinement_data,
    clear_gaps,
    record_usage,
)
from archdoc_refine.infrastructure.config import RefinementPolicy
from archdoc_refine.infrastructure.llm import (
    CompletionClient,
    CompletionOptions,
    CompletionResponse,
    LLMMessage,
)
from archdoc_refine.services.accounting import TokenAccountant
from archdoc_refine.services.domain_prompts import DomainPromptBuilder
from archdoc_refine.services.gap_tracker import is_vague, prioritize_gaps
from archdoc_refine.services.llm_evaluation import ClarityEvaluator
from archdoc_refine.services.llm_questions import QuestionGenerator
from archdoc_refine.services.llm_refinement import AnalysisRefiner
from archdoc_refine.services.retrieval import FileRelevanceRetriever
from archdoc_refine.services.structured_output import StructuredOutputParser

logger = logging.getLogger(__name__)

ANALYSIS_OPTIONS = CompletionOptions(
    temperature=0.3, max_output_tokens=16000, trace_name="AnalyzeInitial"
)
MAX_RANKED_GAPS = 5


@dataclass
class RunContext:
    """Collaborators and settings shared by the nodes of one run.

    Services left as ``None`` are built from ``client`` and ``policy``.
    A context belongs to a single run; concurrent runs need their own.
    """

    task: TaskContext
    prompt_builder: DomainPromptBuilder
    client: CompletionClient
    policy: RefinementPolicy = field(default_factory=RefinementPolicy)
    retriever: FileRelevanceRetriever | None = None
    accountant: TokenAccountant | None = None
    agent_name: str = ""
    evaluator: ClarityEvaluator | None = None
    question_generator: QuestionGenerator | None = None
    refiner: AnalysisRefiner | None = None
    parser: StructuredOutputParser | None = None

    def __post_init__(self) -> None:
        if not self.agent_name:
            self.agent_name = self.prompt_builder.name
        if self.accountant is None:
            self.accountant = TokenAccountant(
                provider=self.client.provider_name,
                model=self.client.model_name,
                token_budget=self.task.token_budget,
            )
        if self.evaluator is None:
            self.evaluator = ClarityEvaluator(
                self.client,
                max_parse_retries=self.policy.max_parse_retries,
                timeout=self.policy.evaluation_timeout,
            )
        if self.question_generator is None:
            self.question_generator = QuestionGenerator(self.client)
        if self.refiner is None:
            self.refiner = AnalysisRefiner(
                self.client, max_excerpt_chars=self.policy.max_excerpt_chars
            )
        if self.parser is None:
            self.parser = StructuredOutputParser(
                self.client,
                max_retries=self.policy.max_parse_retries,
                options=CompletionOptions(temperature=0.0, max_output_tokens=16000),
            )

    def domain_messages(self) -> list[LLMMessage]:
        return [
            LLMMessage(role="system", content=self.prompt_builder.build_system_prompt(self.task)),
            LLMMessage(role="user", content=self.prompt_builder.build_human_prompt(self.task)),
        ]


def _account(
    state: WorkflowState,
    ctx: RunContext,
    responses: Sequence[CompletionResponse],
    trace_name: str,
) -> WorkflowState:
    assert ctx.accountant is not None
    for response in responses:
        ctx.accountant.record(response, trace_name)
    return record_usage(state, responses)


# -- AnalyzeInitial -----------------------------------------------------------

def analyze_initial_node(state: WorkflowState, ctx: RunContext) -> WorkflowState:
    """Produce the first analysis draft and its structured record."""
    assert ctx.parser is not None
    builder = ctx.prompt_builder
    messages = ctx.domain_messages()
    logger.info("[%s] Running initial analysis", ctx.agent_name)

    response = ctx.client.invoke(messages, ANALYSIS_OPTIONS)
    outcome = ctx.parser.parse(
        response,
        builder.parse_output,
        messages,
        context_name=f"{ctx.agent_name}:AnalyzeInitial",
        format_hint=builder.format_hint,
        fallback=builder.fallback_record(),
    )
    state = _account(state, ctx, outcome.responses, "AnalyzeInitial")

    force_stop = builder.should_force_stop(outcome.value)
    if force_stop:
        logger.info("[%s] Nothing to refine; refinement will be skipped", ctx.agent_name)
    return apply_initial_analysis(state, outcome.text, outcome.value, force_stop)


# -- EvaluateClarity ----------------------------------------------------------

def evaluate_clarity_node(state: WorkflowState, ctx: RunContext) -> WorkflowState:
    """Score the draft, record new gaps and decide whether to stop."""
    assert ctx.evaluator is not None
    policy = ctx.policy

    if state.force_stop:
        state = apply_force_stop(state, policy)
    elif len(state.current_analysis.strip()) < policy.min_analysis_length:
        logger.warning(
            "[%s] Analysis too short to evaluate (%d chars)",
            ctx.agent_name,
            len(state.current_analysis.strip()),
        )
        state = apply_insufficient_content(state)
    else:
        previous_clarity = state.clarity_score
        outcome = ctx.evaluator.evaluate(
            state.current_analysis,
            previous_gaps=state.missing_information,
            iteration=state.iteration,
        )
        state = _account(state, ctx, outcome.responses, "EvaluateClarity")
        state = apply_evaluation(state, outcome.value, policy)
        gain = state.clarity_score - previous_clarity
        if state.iteration > 1 and gain < policy.min_improvement:
            logger.info(
                "[%s] Marginal clarity gain at iteration %d (%+.1f)",
                ctx.agent_name,
                state.iteration,
                gain,
            )

    state = apply_termination_decision(state, policy)
    logger.info(
        "[%s] Iteration %d: clarity=%.1f gaps=%d reduction=%.1f%% -> %s",
        ctx.agent_name,
        state.iteration,
        state.clarity_score,
        len(state.missing_information),
        state.gap_reduction_rate,
        state.stop_reason.value if state.stop_reason else "refine",
    )
    return state


# -- GenerateQuestions --------------------------------------------------------

def generate_questions_node(state: WorkflowState, ctx: RunContext) -> WorkflowState:
    """Turn the highest-priority gaps into self-questions."""
    assert ctx.question_generator is not None
    if not state.missing_information:
        return apply_questions(state, [])

    actionable = [g for g in state.missing_information if not is_vague(g.text)]
    if not actionable:
        return clear_gaps(
            apply_questions(state, []),
            f"Iteration {state.iteration}: only vague gaps reported",
        )

    max_questions = ctx.policy.max_questions_per_iteration
    if max_questions < 1:
        return apply_questions(state, [])

    ranked = prioritize_gaps(actionable)[: min(MAX_RANKED_GAPS, 2 * max_questions)]
    outcome = ctx.question_generator.generate(state.current_analysis, ranked, max_questions)
    state = _account(state, ctx, outcome.responses, "GenerateQuestions")
    return apply_questions(state, outcome.value)


# -- RetrieveFiles ------------------------------------------------------------

def retrieve_files_node(state: WorkflowState, ctx: RunContext) -> WorkflowState:
    """Read source files relevant to the self-questions."""
    if state.self_questions:
        if ctx.retriever is None:
            logger.debug("[%s] No retriever configured", ctx.agent_name)
            files = []
        else:
            files = ctx.retriever.gather(
                state.self_questions,
                ctx.task.files,
                files_per_question=ctx.policy.files_per_question,
                max_file_size=ctx.policy.max_file_size,
            )
        state = apply_retrieval(state, files)
    return check_refinement_data(state)


# -- RefineAnalysis -----------------------------------------------------------

def refine_analysis_node(state: WorkflowState, ctx: RunContext) -> WorkflowState:
    """Ask for an improved analysis using questions, gaps and file excerpts."""
    assert ctx.refiner is not None
    messages = ctx.domain_messages()
    outcome = ctx.refiner.refine(
        system_prompt=messages[0].content,
        human_prompt=messages[1].content,
        analysis=state.current_analysis,
        questions=state.self_questions,
        gaps=prioritize_gaps(state.missing_information),
        files=state.retrieved_files,
        iteration=state.iteration,
    )
    state = _account(state, ctx, outcome.responses, "RefineAnalysis")
    return apply_refinement(state, outcome.value, ctx.policy)


# -- Finalize -----------------------------------------------------------------

def finalize_node(state: WorkflowState, ctx: RunContext) -> WorkflowState:
    """Publish the analysis; re-parse the record if the text was refined."""
    assert ctx.parser is not None
    record = None
    if not state.record_is_current and state.current_analysis:
        builder = ctx.prompt_builder
        messages = ctx.domain_messages()
        response = CompletionResponse(text=state.current_analysis)
        outcome = ctx.parser.parse(
            response,
            builder.parse_output,
            messages,
            context_name=f"{ctx.agent_name}:Finalize",
            format_hint=builder.format_hint,
            fallback=state.structured_data or builder.fallback_record(),
        )
        # The first response is the existing analysis; only retries cost tokens.
        state = _account(state, ctx, outcome.responses[1:], "Finalize")
        record = outcome.value

    logger.info(
        "[%s] Finalized after %d iteration(s) with clarity %.1f (%s)",
        ctx.agent_name,
        state.iteration,
        state.clarity_score,
        state.stop_reason.value if state.stop_reason else "completed",
    )
    return apply_finalize(state, record)


NodeFunction = Callable[[WorkflowState, RunContext], WorkflowState]

NODE_FUNCTIONS: dict[WorkflowNode, NodeFunction] = {
    WorkflowNode.ANALYZE_INITIAL: analyze_initial_node,
    WorkflowNode.EVALUATE_CLARITY: evaluate_clarity_node,
    WorkflowNode.GENERATE_QUESTIONS: generate_questions_node,
    WorkflowNode.RETRIEVE_FILES: retrieve_files_node,
    WorkflowNode.REFINE_ANALYSIS: refine_analysis_node,
    WorkflowNode.FINALIZE: finalize_node,
}
