"""Concurrent execution of independent refinement agents.

Agents share only read-only inputs (the task context); each run owns its
state, accountant and retriever, so they can run on a thread pool.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from archdoc_refine.agents.refinement_agent import RefinementAgent
from archdoc_refine.domain.values import RefinementResult, TaskContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentOutcome:
    """Result or error of one agent run."""

    agent_name: str
    result: RefinementResult | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.result is not None


def run_agents(
    agents: Sequence[RefinementAgent],
    task: TaskContext,
    max_workers: int | None = None,
) -> list[AgentOutcome]:
    """Run every agent on *task* concurrently.

    A failing agent does not stop the others; its exception is captured in
    the corresponding :class:`AgentOutcome`.  Outcomes are returned in the
    order of *agents*.
    """
    if not agents:
        return []
    workers = max_workers or len(agents)
    outcomes: dict[int, AgentOutcome] = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(agent.run, task): i for i, agent in enumerate(agents)}
        for future in concurrent.futures.as_completed(futures):
            index = futures[future]
            agent = agents[index]
            try:
                outcomes[index] = AgentOutcome(agent.name, result=future.result())
            except Exception as exc:
                logger.error("[%s] Agent run failed: %s", agent.name, exc)
                outcomes[index] = AgentOutcome(agent.name, error=exc)
    return [outcomes[i] for i in range(len(agents))]
