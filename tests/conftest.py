"""Shared fixtures for the archdoc-refine test suite."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from archdoc_refine.domain.values import TaskContext
from archdoc_refine.infrastructure.config import RefinementPolicy
from archdoc_refine.services.domain_prompts import DomainPromptBuilder

# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------


class MarkdownPromptBuilder(DomainPromptBuilder):
    """Builder whose output is free-form markdown; parsing never fails."""

    name = "architecture"

    def build_system_prompt(self, context: TaskContext) -> str:
        return "You are a senior software architect."

    def build_human_prompt(self, context: TaskContext) -> str:
        return f"Describe the architecture of {context.project_path} ({len(context.files)} files)."

    def parse_output(self, text: str) -> Mapping[str, Any]:
        return {
            "headings": [line for line in text.splitlines() if line.startswith("#")],
            "length": len(text),
        }

    def should_force_stop(self, record: Mapping[str, Any]) -> bool:
        return False


class JsonPromptBuilder(DomainPromptBuilder):
    """Builder relying on the default JSON parsing and force-stop rules."""

    name = "patterns"

    def build_system_prompt(self, context: TaskContext) -> str:
        return "You detect design patterns. Answer in JSON."

    def build_human_prompt(self, context: TaskContext) -> str:
        return "List the design patterns as {\"patterns\": [...]}."

    def fallback_record(self) -> Mapping[str, Any]:
        return {"fallback": True}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def markdown_builder() -> MarkdownPromptBuilder:
    return MarkdownPromptBuilder()


@pytest.fixture
def json_builder() -> JsonPromptBuilder:
    return JsonPromptBuilder()


@pytest.fixture
def policy() -> RefinementPolicy:
    """Three iterations, clarity threshold 80."""
    return RefinementPolicy(max_iterations=3, clarity_threshold=80.0)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small TypeScript project on disk."""
    files = {
        "src/index.ts": "import { bootstrap } from './app';\nbootstrap();\n",
        "src/auth/auth.service.ts": "export class AuthService { login() {} }\n",
        "src/auth/jwt.guard.ts": "export class JwtGuard {}\n",
        "src/users/user.controller.ts": "export class UserController {}\n",
        "src/models/user.entity.ts": "export class User { id: string; }\n",
        "src/config/settings.ts": "export const settings = { port: 3000 };\n",
        "src/db/connection.ts": "export const connect = () => null;\n",
        "node_modules/lib/index.js": "module.exports = {};\n",
        "dist/main.js": "console.log('built');\n",
        "README.md": "# Demo\n",
    }
    for relative, content in files.items():
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return tmp_path


@pytest.fixture
def project_files() -> tuple[str, ...]:
    return (
        "src/index.ts",
        "src/auth/auth.service.ts",
        "src/auth/jwt.guard.ts",
        "src/users/user.controller.ts",
        "src/models/user.entity.ts",
        "src/config/settings.ts",
        "src/db/connection.ts",
        "node_modules/lib/index.js",
        "dist/main.js",
        "README.md",
    )


@pytest.fixture
def task(project: Path, project_files: tuple[str, ...]) -> TaskContext:
    return TaskContext(project_path=str(project), files=project_files, execution_id="test-run")
