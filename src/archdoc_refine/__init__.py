"""archdoc-refine: iterative LLM self-refinement for codebase documentation.

An analysis agent drafts a document, critiques its own draft, turns the
gaps it finds into questions, pulls the source files that answer them and
re-drafts, until the draft is clear enough or stops improving.
"""

__version__ = "0.1.0"

from archdoc_refine.agents import AgentOutcome, RefinementAgent, run_agents
from archdoc_refine.domain import RefinementResult, TaskContext
from archdoc_refine.graph import (
    RefinementStateMachine,
    WorkflowState,
    build_refinement_graph,
)
from archdoc_refine.infrastructure.config import LLMSettings, RefinementPolicy
from archdoc_refine.services.domain_prompts import DomainPromptBuilder

__all__ = [
    "AgentOutcome",
    "DomainPromptBuilder",
    "LLMSettings",
    "RefinementAgent",
    "RefinementPolicy",
    "RefinementResult",
    "RefinementStateMachine",
    "TaskContext",
    "WorkflowState",
    "build_refinement_graph",
    "run_agents",
]
