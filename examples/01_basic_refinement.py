#!/usr/bin/env python3
"""Example 01: a single refinement run with a scripted chat model.

Demonstrates:
- Writing a ``DomainPromptBuilder`` for an analysis domain
- Running ``RefinementAgent`` offline through ``ChatModelCompletionClient``
- Inspecting the step history recorded by the state machine

Run:
    PYTHONPATH=src python examples/01_basic_refinement.py
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from archdoc_refine import RefinementAgent, RefinementPolicy, TaskContext
from archdoc_refine.graph import StepRecord
from archdoc_refine.infrastructure.llm.chat_model import ChatModelCompletionClient
from archdoc_refine.services import DomainPromptBuilder
from archdoc_refine.testing import ScriptedChatModel, evaluation_text

DRAFT = (
    "# Architecture\n\n"
    "The service is a NestJS application. Controllers receive HTTP requests and "
    "delegate to services, which persist entities through TypeORM repositories.\n"
)
REFINED = DRAFT + (
    "\n## Authentication\n\n"
    "`JwtGuard` (src/auth/jwt.guard.ts) validates bearer tokens before any "
    "controller handler runs; `AuthService.login` issues the tokens.\n"
)


class ArchitecturePromptBuilder(DomainPromptBuilder):
    """Free-form markdown architecture overview."""

    name = "architecture"
    format_hint = "Respond with a markdown document starting with '# Architecture'."

    def build_system_prompt(self, context: Any) -> str:
        return "You are a senior software architect documenting a codebase."

    def build_human_prompt(self, context: Any) -> str:
        files = "\n".join(f"- {f}" for f in context.files)
        return f"Describe the architecture of the project with these files:\n{files}"

    def parse_output(self, text: str) -> Mapping[str, Any]:
        if not text.lstrip().startswith("#"):
            raise ValueError("expected a markdown heading")
        return {"sections": [line.lstrip("# ") for line in text.splitlines() if line.startswith("#")]}

    def should_force_stop(self, record: Mapping[str, Any]) -> bool:
        return False


def make_project(root: Path) -> tuple[str, ...]:
    files = {
        "src/main.ts": "import { AppModule } from './app.module';\n",
        "src/auth/auth.service.ts": "export class AuthService { login() {} }\n",
        "src/auth/jwt.guard.ts": "export class JwtGuard { canActivate() { return true; } }\n",
        "src/users/user.controller.ts": "export class UserController {}\n",
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return tuple(files)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    model = ScriptedChatModel(
        responses=[
            (DRAFT, 900, 350),
            (evaluation_text(62, ["How are authentication tokens validated?"]), 600, 60),
            ("1. Which guard validates JWT tokens?", 300, 20),
            (REFINED, 1800, 500),
            (evaluation_text(85), 700, 30),
        ]
    )
    client = ChatModelCompletionClient(
        model, provider="anthropic", model_name="claude-sonnet-4-20250514"
    )

    steps: list[StepRecord] = []
    agent = RefinementAgent(
        ArchitecturePromptBuilder(),
        client,
        policy=RefinementPolicy(max_iterations=3),
        checkpoint=steps.append,
    )

    with tempfile.TemporaryDirectory() as tmp:
        files = make_project(Path(tmp))
        result = agent.run(TaskContext(project_path=tmp, files=files))

    print("=== Refinement Run ===")
    for step in steps:
        following = step.next_node.value if step.next_node else "end"
        print(
            f"  [{step.index}] {step.node.value:<20} -> {following:<20} "
            f"clarity={step.state.clarity_score:5.1f} gaps={len(step.state.missing_information)}"
        )
    print()
    print(f"Stop reason: {result.stop_reason.value if result.stop_reason else 'n/a'}")
    print(f"Iterations:  {result.iterations}")
    print(f"Confidence:  {result.confidence:.2f}")
    print(f"Tokens:      {result.token_usage.to_dict()}")
    print(f"Cost:        ${result.estimated_cost:.4f}")
    print(f"Sections:    {result.structured_data.get('sections')}")


if __name__ == "__main__":
    main()
