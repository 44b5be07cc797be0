"""Agent layer for archdoc-refine.

Re-exports public agent types for convenient top-level access::

    from archdoc_refine.agents import RefinementAgent, run_agents
"""

from archdoc_refine.agents.refinement_agent import RefinementAgent
from archdoc_refine.agents.runner import AgentOutcome, run_agents

__all__ = [
    "AgentOutcome",
    "RefinementAgent",
    "run_agents",
]
