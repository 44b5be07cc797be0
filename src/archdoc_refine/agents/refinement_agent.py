"""Refinement agent: one analysis domain, one self-refining run per task.

A :class:`RefinementAgent` pairs a domain prompt builder with a completion
client and a policy.  Each call to :meth:`RefinementAgent.run` builds a
fresh run context (accountant, retriever) so one agent can serve several
tasks, including concurrently.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from archdoc_refine.domain.values import RefinementResult, TaskContext
from archdoc_refine.graph.machine import CheckpointHook, RefinementStateMachine
from archdoc_refine.graph.nodes import RunContext
from archdoc_refine.graph.state import WorkflowState
from archdoc_refine.infrastructure.config import RefinementPolicy
from archdoc_refine.infrastructure.file_reader import FileReader, LocalFileReader
from archdoc_refine.infrastructure.llm import CompletionClient
from archdoc_refine.services.accounting import RateTable, TokenAccountant
from archdoc_refine.services.domain_prompts import DomainPromptBuilder
from archdoc_refine.services.retrieval import FileRelevanceRetriever

logger = logging.getLogger(__name__)


class RefinementAgent:
    """Runs the self-refinement loop for one analysis domain.

    Parameters
    ----------
    prompt_builder:
        Domain prompts, output parser and force-stop predicate.
    client:
        Completion client shared by every node.
    policy:
        Loop limits; defaults to :class:`RefinementPolicy`.
    file_reader:
        Source of file contents; defaults to a :class:`LocalFileReader`
        rooted at the task's project path.
    rate_table:
        Rates used for the cost estimate.
    name:
        Agent name; defaults to ``prompt_builder.name``.
    checkpoint:
        Optional hook receiving every step record of every run.
    """

    def __init__(
        self,
        prompt_builder: DomainPromptBuilder,
        client: CompletionClient,
        policy: RefinementPolicy | None = None,
        file_reader: FileReader | None = None,
        rate_table: RateTable | None = None,
        name: str | None = None,
        checkpoint: CheckpointHook | None = None,
    ) -> None:
        self._prompt_builder = prompt_builder
        self._client = client
        self._policy = policy or RefinementPolicy()
        self._file_reader = file_reader
        self._rate_table = rate_table
        self._name = name or prompt_builder.name
        self._checkpoint = checkpoint

    @property
    def name(self) -> str:
        return self._name

    @property
    def policy(self) -> RefinementPolicy:
        return self._policy

    def build_context(self, task: TaskContext) -> RunContext:
        """Create the per-run collaborators for *task*."""
        reader = self._file_reader or LocalFileReader(task.project_path)
        return RunContext(
            task=task,
            prompt_builder=self._prompt_builder,
            client=self._client,
            policy=self._policy,
            retriever=FileRelevanceRetriever(reader, dependency_graph=task.dependency_graph),
            accountant=TokenAccountant(
                provider=self._client.provider_name,
                model=self._client.model_name,
                rate_table=self._rate_table,
                token_budget=task.token_budget,
            ),
            agent_name=self._name,
        )

    def run(
        self,
        task: TaskContext,
        executor: Callable[[RunContext], WorkflowState] | None = None,
    ) -> RefinementResult:
        """Analyse *task* and return the refined result.

        Parameters
        ----------
        task:
            Project and file list to analyse.
        executor:
            Optional callable running the loop for a context, e.g.
            :func:`~archdoc_refine.graph.graph.run_refinement_graph`.
            Defaults to :class:`RefinementStateMachine`.

        Raises
        ------
        CompletionError
            If the completion backend fails; the run is aborted.
        """
        start = time.monotonic()
        context = self.build_context(task)
        logger.info(
            "[%s] Starting refinement for %s (%d candidate files)",
            self._name,
            task.project_path,
            len(task.files),
        )
        if executor is None:
            state = RefinementStateMachine(context, checkpoint=self._checkpoint).run()
        else:
            state = executor(context)
        result = self._to_result(state, context, time.monotonic() - start)
        logger.info(
            "[%s] Done: %d iteration(s), clarity %.1f, %d tokens, $%.4f",
            self._name,
            result.iterations,
            result.clarity_score,
            result.token_usage.total_tokens,
            result.estimated_cost,
        )
        return result

    def _to_result(
        self,
        state: WorkflowState,
        context: RunContext,
        elapsed: float,
    ) -> RefinementResult:
        assert context.accountant is not None
        return RefinementResult(
            agent_name=self._name,
            final_analysis=state.final_analysis or state.current_analysis,
            structured_data=dict(state.structured_data),
            iterations=state.iteration,
            clarity_score=state.clarity_score,
            residual_gaps=tuple(g.text for g in state.missing_information),
            self_questions=tuple(state.self_questions),
            token_usage=state.token_usage,
            estimated_cost=context.accountant.estimated_cost(),
            stop_reason=state.stop_reason,
            execution_time=elapsed,
            warnings=tuple(state.refinement_notes),
        )
