#!/usr/bin/env python3
"""Example 03: several domain agents over the same project.

Demonstrates:
- ``run_agents()`` running independent agents on a thread pool
- Per-agent failures captured without stopping the others
- Building a real provider client from environment settings (optional)

Run:
    PYTHONPATH=src python examples/03_concurrent_agents.py

Set ``ARCHDOC_LLM_PROVIDER`` and the provider's API key (for example
``ANTHROPIC_API_KEY``) plus ``ARCHDOC_USE_LLM=1`` to call a real model.
"""

from __future__ import annotations

import json
import os
from typing import Any

from archdoc_refine import LLMSettings, RefinementAgent, TaskContext, run_agents
from archdoc_refine.infrastructure.llm import CompletionClient, CompletionError
from archdoc_refine.infrastructure.llm.factory import create_completion_client
from archdoc_refine.services import DomainPromptBuilder
from archdoc_refine.testing import ScriptedCompletionClient, evaluation_text


class _DomainBuilder(DomainPromptBuilder):
    def __init__(self, name: str, topic: str) -> None:
        self.name = name
        self._topic = topic

    def build_system_prompt(self, context: Any) -> str:
        return f"You document the {self._topic} of software projects. Answer in JSON."

    def build_human_prompt(self, context: Any) -> str:
        return f'Describe the {self._topic} as {{"findings": [...], "summary": "..."}}.'


def _offline_client(topic: str) -> CompletionClient:
    record = json.dumps(
        {
            "findings": [f"{topic} documented"],
            "summary": f"The {topic} is described from the module layout, the public "
            "entry points and the imports between packages.",
        }
    )
    return ScriptedCompletionClient(
        by_trace={
            "AnalyzeInitial": [(record, 500, 150)],
            "EvaluateClarity": [(evaluation_text(88), 300, 25)],
        }
    )


def main() -> None:
    task = TaskContext(project_path=".", files=())
    domains = [
        ("architecture", "layered architecture"),
        ("security", "authentication and authorization"),
        ("data-flow", "data flow between modules"),
    ]

    if os.environ.get("ARCHDOC_USE_LLM") == "1":
        shared = create_completion_client(LLMSettings.from_env())
        agents = [RefinementAgent(_DomainBuilder(n, t), shared) for n, t in domains]
    else:
        agents = [
            RefinementAgent(_DomainBuilder(n, t), _offline_client(t))
            for n, t in domains
        ]
        agents.append(
            RefinementAgent(
                _DomainBuilder("broken", "deployment"),
                ScriptedCompletionClient([CompletionError("quota exceeded")]),
            )
        )

    print("=== Concurrent Agents ===")
    for outcome in run_agents(agents, task):
        if outcome.succeeded and outcome.result is not None:
            result = outcome.result
            print(
                f"  {outcome.agent_name:<13} ok    confidence={result.confidence:.2f} "
                f"tokens={result.token_usage.total_tokens} "
                f"stop={result.stop_reason.value if result.stop_reason else 'n/a'}"
            )
        else:
            print(f"  {outcome.agent_name:<13} error {outcome.error}")


if __name__ == "__main__":
    main()
